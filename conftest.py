import pathlib
import sys

import pytest

# Ensure repo root is on sys.path when running without an editable install.
_REPO_ROOT = pathlib.Path(__file__).resolve().parent
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from zk_airdrop.claims import AirdropSystem, EngineConfig, Identity, ManualClock  # noqa: E402
from zk_airdrop.claims.feature_flags import set_verifier_backend  # noqa: E402

_ENV_VARS = (
    "ZK_AIRDROP_VERIFIER",
    "ZK_AIRDROP_ROOT_WINDOW",
    "ZK_AIRDROP_ROOT_CAPACITY",
    "ZK_AIRDROP_ENGINE_ADDRESS",
    "ZK_AIRDROP_VERIFICATION_KEY",
    "ZK_AIRDROP_STATE",
)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    set_verifier_backend(None)
    yield
    set_verifier_backend(None)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(1_000.0)


@pytest.fixture
def system(clock: ManualClock) -> AirdropSystem:
    return AirdropSystem.build(EngineConfig(), clock=clock)


ADMIN = "admin"
MANAGER = "manager"
HOLDER = "treasury"
TOKEN = "TKN"


@pytest.fixture
def make_airdrop(system: AirdropSystem):
    """
    Factory: group 1 with ``members`` fresh identities, a funded holder and
    one airdrop. Returns (airdrop_id, identities).
    """

    def _make(members: int = 1, amount: int = 1, balance: int = 10, allowance: int = 10):
        identities = [Identity(nullifier=101 + i, trapdoor=202 + i) for i in range(members)]
        system.create_group(1, ADMIN)
        for identity in identities:
            system.add_member(1, identity.commitment, ADMIN)
        system.mint(TOKEN, HOLDER, balance)
        system.approve(TOKEN, HOLDER, allowance)
        airdrop_id = system.create_airdrop(1, TOKEN, HOLDER, amount, manager=MANAGER)
        return airdrop_id, identities

    return _make
