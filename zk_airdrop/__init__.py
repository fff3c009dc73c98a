"""
zk_airdrop - anonymous airdrop claims backed by zero-knowledge group membership.

⚠️ EXPERIMENTAL - mock proofs are transparent and for testing only.
"""

__version__ = "0.1.0"

DISCLAIMER = """
⚠️  EXPERIMENTAL CLAIM ENGINE ⚠️

The default verifier accepts transparent mock proofs that reveal the
claimant's identity secrets. Use the snarkjs verifier backend with a real
verification key before handling anything of value.
"""


def print_disclaimer() -> None:
    print(DISCLAIMER)
