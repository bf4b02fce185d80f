"""
Solana Explorer links for transactions and accounts.
"""

EXPLORER_BASE_URL = "https://explorer.solana.com"

LINK_KINDS = ("tx", "address")


def explorer_url(value: str, kind: str = "tx", cluster: str = "devnet") -> str:
    """Explorer URL for a transaction signature or an account address."""
    if kind not in LINK_KINDS:
        raise ValueError(f"Unknown explorer link kind: {kind}")
    return f"{EXPLORER_BASE_URL}/{kind}/{value}?cluster={cluster}"


def explorer_address_url(address: str, cluster: str = "devnet") -> str:
    return explorer_url(address, "address", cluster)
