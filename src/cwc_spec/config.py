"""CWC escrow spec configuration constants.

Values mirror the deployed EscrowLibrary contract.
"""

# Sizes
ADDRESS_SIZE = 20
HASH_SIZE = 32
UINT256_SIZE = 32
SIGNATURE_SIZE = 65

UINT256_MAX = (1 << 256) - 1

# Zero address doubles as the native (ETH) asset id
ZERO_ADDRESS = bytes(ADDRESS_SIZE)
NATIVE_ASSET = ZERO_ADDRESS

# Timelocks
SECONDS_PER_DAY = 24 * 3600
FORCE_REFUND_GRACE = 2 * SECONDS_PER_DAY

# Signed messages (web3 `eth.accounts.sign` personal message prefix)
SIGNED_MESSAGE_PREFIX = b"\x19Ethereum Signed Message:\n"

# Packed message lengths: handle(20) || type(1) || fields
CASHOUT_MESSAGE_LEN = ADDRESS_SIZE + 1 + UINT256_SIZE
REFUND_MESSAGE_LEN = ADDRESS_SIZE + 1 + UINT256_SIZE
PUZZLE_MESSAGE_LEN = ADDRESS_SIZE + 1 + UINT256_SIZE * 2 + HASH_SIZE + UINT256_SIZE

# Factory create2 marker
CREATE2_PREFIX = b"\xff"
