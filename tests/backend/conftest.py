import pytest

from src.befree.infra.db.inmemory import InMemoryDocumentStore, get_document_store, set_document_store
from src.befree.infra.db.models import Base
from src.befree.infra.db.session import create_sqlalchemy_engine, create_sqlalchemy_session_factory
from src.befree.infra.db.sql_documents import SqlDocumentStore


@pytest.fixture(autouse=True)
def document_store():
    """Give every test its own empty in-memory store, including the module-level services."""

    previous = get_document_store()
    store = InMemoryDocumentStore()
    set_document_store(store)
    yield store
    set_document_store(previous)


@pytest.fixture
def gbv_answers():
    return {
        "name": "Ndapewa",
        "phone_number": "0811234567",
        "email": "",
        "emotional_violence": ["mocked"],
        "suicide_attempt": "yes",
        "physical_violence": ["no"],
        "serious_injury": "no",
        "sexual_violence": ["no"],
        "sexual_violence_timeline": "no_history",
    }


@pytest.fixture
def prep_answers():
    return {
        "name": "Tomas",
        "email": "tomas@example.com",
        "multiple_partners": "no",
        "unprotected_sex": "yes",
        "unknown_status_partners": "no",
        "at_risk_partners": "no",
        "sex_under_influence": "no",
        "new_sti_diagnosis": "no",
        "considers_at_risk": "no",
        "used_pep_multiple_times": "no",
        "forced_sex": "no",
    }


@pytest.fixture
def whatsapp_route():
    return {
        "region": "Ohangwena",
        "constituency": "Eenhana",
        "facility": "Eenhana clinic",
        "contact_method": "whatsapp",
    }


def make_sql_store(path):
    engine = create_sqlalchemy_engine(f"sqlite:///{path}")
    Base.metadata.create_all(engine)
    return SqlDocumentStore(create_sqlalchemy_session_factory(engine))


@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path):
    """Each store implementation in turn; SQL runs on a SQLite file."""

    if request.param == "memory":
        return InMemoryDocumentStore()
    return make_sql_store(tmp_path / "documents.db")


@pytest.fixture
def sql_store(tmp_path):
    return make_sql_store(tmp_path / "documents.db")
