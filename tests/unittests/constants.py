from eth_utils import to_checksum_address, to_wei

TEST_CONTRACT_ADDRESS = to_checksum_address(f"0x98{1:038d}")
TEST_RPC_URL = "http://localhost:8545"

# Keys 1..6 are valid secp256k1 secrets, good enough for signing in tests.
TEST_PRIVATE_KEYS = tuple(f"0x{n:064x}" for n in range(1, 7))

TEST_GAS_PRICE = to_wei(10, "gwei")
TEST_NONCE = 7
TEST_GAS_ESTIMATE = 100_000
TEST_BLOCK_NUMBER = 123

#: Selector of `mint(uint256)`.
MINT_SELECTOR = "0xa0712d68"
