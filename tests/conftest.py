import asyncio
import os
import sys
import tempfile
import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from asgi_lifespan import LifespanManager
from mongomock_motor import AsyncMongoMockClient

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

# Settings are read at import time
_FILES_ROOT = tempfile.mkdtemp(prefix="eresidency-tests-")
os.environ.setdefault("ANYIO_BACKEND", "asyncio")
os.environ["ENVIRONMENT"] = "development"
os.environ["LOG_FORMAT"] = "console"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RECONCILE_INTERVAL_SECONDS"] = "0"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["MINT_TIMEOUT_SECONDS"] = "5"
os.environ["UPLOAD_DIR"] = os.path.join(_FILES_ROOT, "uploads")
os.environ["CERTIFICATE_DIR"] = os.path.join(_FILES_ROOT, "certificates")

from eresidency.main import app  # noqa: E402
from eresidency.api.dto.application_dto import ApplicationCreateRequestDTO  # noqa: E402
from eresidency.api.dto.user_dto import UserRegisterRequestDTO  # noqa: E402
from eresidency.api.services.application_service import application_service  # noqa: E402
from eresidency.api.services.document_service import IncomingFile, document_service  # noqa: E402
from eresidency.api.services.minting_coordinator import minting_coordinator  # noqa: E402
from eresidency.api.services.reconciliation_service import reconciliation_service  # noqa: E402
from eresidency.api.services.user_service import user_service  # noqa: E402
from eresidency.core.exceptions import (  # noqa: E402
    ExternalServiceError,
    LedgerRejectedError,
    LedgerTimeoutError,
)
from eresidency.domain.models.application import ApplicationType  # noqa: E402
from eresidency.domain.models.document import DocumentStatus, DocumentType  # noqa: E402
from eresidency.domain.repositories.mongo import mongodb  # noqa: E402
from eresidency.infrastructure.blockchain.residency_ledger import (  # noqa: E402
    LedgerMintResult,
    LedgerToken,
    LedgerTransaction,
    TransactionState,
)
from eresidency.infrastructure.cache import cache_service  # noqa: E402
from eresidency.infrastructure.storage.file_storage import (  # noqa: E402
    certificate_storage,
    document_storage,
)

CONTRACT_ADDRESS = "0x00000000000000000000000000000000000C0FFE"
PDF_BYTES = b"%PDF-1.4\n% test document\n"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def anyio_backend():
    return "asyncio"


class InMemoryCache:
    """Stands in for Redis behind cache_service."""

    def __init__(self):
        self.store = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, expire=None):
        self.store[key] = value
        return True

    async def delete(self, *keys):
        return sum(1 for key in keys if self.store.pop(key, None) is not None)


@pytest.fixture(autouse=True)
def memory_cache(monkeypatch) -> InMemoryCache:
    cache = InMemoryCache()
    monkeypatch.setattr(cache_service, "get", cache.get)
    monkeypatch.setattr(cache_service, "set", cache.set)
    monkeypatch.setattr(cache_service, "delete", cache.delete)
    return cache


class FakeLedger:
    """
    Residency NFT contract double.

    Modes: ``succeed`` mints, ``reject`` fails before broadcast, ``hang``
    broadcasts and then waits until ``release()``, after which the outcome
    is reported as unknown. A hung transaction stays pending on the node until
    the test calls ``land()`` or ``drop()``.
    """

    def __init__(self):
        self.mode = "succeed"
        self.delay = 0.01
        self.mint_calls = 0
        self.tokens = {}
        self.transactions = {}
        self.unavailable = False
        self._broadcasts = {}
        self._released = asyncio.Event()

    def release(self):
        self._released.set()

    def _issue(self, tx_hash, wallet_address, e_residency_id, token_id=None):
        token = LedgerToken(
            token_id=token_id or str(len(self.tokens) + 1),
            transaction_hash=tx_hash,
            contract_address=CONTRACT_ADDRESS,
            block_number=100 + len(self.tokens),
            e_residency_id=e_residency_id,
        )
        self.tokens[wallet_address] = token
        self.transactions[tx_hash] = TransactionState.MINED
        return token

    def land(self, tx_hash, token_id=None):
        """Mine a pending transaction."""
        wallet_address, e_residency_id = self._broadcasts[tx_hash]
        return self._issue(tx_hash, wallet_address, e_residency_id, token_id)

    def drop(self, tx_hash):
        """The node forgets a pending transaction."""
        self.transactions.pop(tx_hash, None)

    async def mint(self, payload, wallet_address, on_broadcast=None):
        self.mint_calls += 1
        if self.mode == "reject":
            raise LedgerRejectedError("execution reverted")

        tx_hash = "0x" + uuid.uuid4().hex * 2
        self._broadcasts[tx_hash] = (wallet_address, payload.e_residency_id)
        self.transactions[tx_hash] = TransactionState.PENDING
        if on_broadcast:
            await on_broadcast(tx_hash)

        if self.mode == "hang":
            await self._released.wait()
            raise LedgerTimeoutError(transaction_hash=tx_hash)

        await asyncio.sleep(self.delay)
        token = self._issue(tx_hash, wallet_address, payload.e_residency_id)
        return LedgerMintResult(
            token_id=token.token_id,
            transaction_hash=tx_hash,
            contract_address=CONTRACT_ADDRESS,
            block_number=token.block_number,
        )

    async def transaction_status(self, tx_hash):
        if self.unavailable:
            raise ExternalServiceError("RPC unavailable")
        state = self.transactions.get(tx_hash, TransactionState.UNKNOWN)
        if state != TransactionState.MINED:
            return LedgerTransaction(state=state)
        token = next(token for token in self.tokens.values() if token.transaction_hash == tx_hash)
        return LedgerTransaction(state=state, token=token)

    async def find_token(self, wallet_address):
        if self.unavailable:
            raise ExternalServiceError("RPC unavailable")
        return self.tokens.get(wallet_address)


@pytest.fixture
def ledger(monkeypatch) -> FakeLedger:
    fake = FakeLedger()
    monkeypatch.setattr(minting_coordinator, "ledger", fake)
    monkeypatch.setattr(reconciliation_service, "ledger", fake)
    return fake


@pytest.fixture
async def db(anyio_backend):
    """In-memory MongoDB bound into the shared database handle."""
    client = AsyncMongoMockClient()
    database = client[f"eresidency_test_{uuid.uuid4().hex[:8]}"]
    mongodb.bind(database)
    await mongodb.create_all_indexes()
    document_storage.ensure_directory()
    certificate_storage.ensure_directory()
    yield database
    await mongodb.disconnect()


@pytest.fixture
async def async_client(db):
    """Shared HTTPX async client with FastAPI lifespan handling."""
    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client


def auth_headers(cache: InMemoryCache, user_id: str, role: str = "user") -> dict:
    """Write a session the way the auth service does and return its Bearer header."""
    session_id = uuid.uuid4().hex
    cache.store[f"session:{session_id}"] = {
        "user_id": user_id,
        "email": f"{role}@example.com",
        "role": role,
    }
    return {"Authorization": f"Bearer {session_id}"}


async def register_user(name: str = "Ada Lovelace", country: str = "United Kingdom") -> dict:
    suffix = uuid.uuid4().hex[:8]
    user = await user_service.register(
        UserRegisterRequestDTO(
            full_name=name,
            email=f"{suffix}@example.com",
            password="correct horse battery",
            passport_number=f"P{suffix}",
            country=country,
            residency_type="bhutan",
        )
    )
    return user.model_dump()


async def approved_visa_application(reviewer_id: str = "reviewer-1") -> tuple:
    """A user with a visa application whose passport and photo are verified."""
    user = await register_user()
    application = await application_service.create(
        user["id"], ApplicationCreateRequestDTO(type=ApplicationType.VISA)
    )
    for doc_type, filename, mime, content in (
        (DocumentType.PASSPORT, "passport.pdf", "application/pdf", PDF_BYTES),
        (DocumentType.PHOTO, "photo.png", "image/png", PNG_BYTES),
    ):
        documents = await document_service.upload(
            user["id"],
            [IncomingFile(filename, mime, content)],
            doc_type,
            application_id=application["id"],
        )
        await document_service.review(documents[0]["id"], reviewer_id, DocumentStatus.VERIFIED)

    await application_service.start_review(application["id"], reviewer_id)
    application = await application_service.decide(application["id"], reviewer_id, "approved")
    return user, application


def wallet(n: int) -> str:
    """Deterministic, valid EVM address."""
    return "0x" + f"{n:040x}"
