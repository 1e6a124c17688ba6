"""Shared test fixtures."""
import pytest

from casedesk.database import Store
from casedesk.services.leads import LeadMutator


@pytest.fixture
def store(tmp_path):
    """File-backed SQLite store with schema created. One file per test."""
    store = Store(url=f"sqlite:///{tmp_path / 'casedesk.db'}")
    store.create_all()
    yield store
    store.dispose()


@pytest.fixture
def bare_store(tmp_path):
    """SQLite store with no tables, for missing-schema paths."""
    store = Store(url=f"sqlite:///{tmp_path / 'empty.db'}")
    yield store
    store.dispose()


@pytest.fixture
def mutator(store):
    return LeadMutator(store)


@pytest.fixture
def make_lead(mutator):
    """Factory fixture — inserts a lead through the mutator and returns it decoded."""
    def _make(**overrides):
        data = {
            'need': '需要一個形象網站',
            'platform': 'FB',
            'platform_id': 'client-one',
            'budget_text': '5000-10000',
            'created_by': 'u_001',
            'created_by_name': '王小明',
        }
        data.update(overrides)
        assign = data.pop('assign_case_code', False)
        return mutator.create(data, assign_case_code=assign)
    return _make


@pytest.fixture
def app(store):
    """Flask test app bound to the test store."""
    from casedesk import create_app
    app = create_app(store=store)
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c
