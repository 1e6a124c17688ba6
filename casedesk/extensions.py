"""
Per-app service instances — the Store and the LeadMutator built on it.

create_app() registers them on app.extensions; blueprints fetch them through
get_store() / get_mutator(), so tests can hand in their own store.
"""
import logging

from flask import current_app

from casedesk.services.leads import LeadMutator

logger = logging.getLogger('casedesk.extensions')

STORE_KEY = 'casedesk.store'
MUTATOR_KEY = 'casedesk.mutator'


def init_extensions(app, store):
    app.extensions[STORE_KEY] = store
    app.extensions[MUTATOR_KEY] = LeadMutator(store)
    logger.info("Store bound to %s", store.engine.url.render_as_string(hide_password=True))


def get_store():
    return current_app.extensions[STORE_KEY]


def get_mutator():
    return current_app.extensions[MUTATOR_KEY]
