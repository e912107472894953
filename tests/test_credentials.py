import pytest

from qbwc.dispatch import ConnectionCredentialValidator
from qbwc.storage import ConnectionRecord
from qbwc.storage.memory import InMemoryConnectionStore


@pytest.mark.asyncio
@pytest.mark.parametrize("username,password,accepted", [
    ("svc", "p@ss", True),
    ("svc", "P@ss", False),
    ("SVC", "p@ss", False),
    ("svc", "", False),
    (None, "p@ss", False),
    ("svc", None, False),
])
async def test_validate_against_connection(username, password, accepted):
    store = InMemoryConnectionStore(ConnectionRecord(company_name="Acme", wc_username="svc", wc_password="p@ss"))
    validator = ConnectionCredentialValidator(store)

    assert await validator.validate(username, password) is accepted


@pytest.mark.asyncio
async def test_no_connection_rejects_everything():
    validator = ConnectionCredentialValidator(InMemoryConnectionStore())
    assert await validator.validate("svc", "p@ss") is False
