import pytest

from sharepool.types import Hash, NetworkType
from sharepool.wallet import Wallet, is_valid_point

MAINNET_1 = "49ccoSmrBTPJd5yf8VYCULh4J5rHQaXP1TeC8Cnqhd5H9Y2cMwkJ9w42euLmMghKtCiQcgZEiGYW1K6Ae4biZ7w1HLSexS6"
MAINNET_2 = "45JHuqGBSqUXUyZx95H4C2J5aEL4zFjM3jpTmMTESPXPa3jmtSQWYezHX7r4A2xPQNBGsQupJqmPhRZb2QgBcEWRDQ9ywwR"

VALID_CASES = [
    (
        NetworkType.MAINNET, MAINNET_1,
        "d2e232e441546a695b27187692d035ef7be5c54692700c9f470dcd706753a833",
        "06f68970da46f709e2b4d0ffabd0d1f78ea6717786b5766c25c259111f212490",
    ),
    (
        NetworkType.MAINNET, MAINNET_2,
        "60fe176eaf3cffb63df130bc25036b661b947900941052fffe6ff4b51fc4f2c5",
        "9387910b0a2e4f62c32621b77ddbeb3d6c0054e5ed9bc492d87bab1a1eef366d",
    ),
    (
        NetworkType.MAINNET,
        "43S5vhReDY4fJs99DBZtFS8JoJVNG17iaAVAARvRT8xzSYZqnJfXfTACLrZUzoBHQKhiJZCWCpqB4Kf3c64CEagdSRXd5D7",
        "2fc2f902659541e50753853ddb96912baf55f26bebe7d338b5c2239c437ddb98",
        "b814951166253543cfb0e1b8bdea58f366de824fddb8ef6f895fcf631873f6e1",
    ),
    (
        NetworkType.TESTNET,
        "9x6aEN1yd2WhPMPw89LV5LLK1ZFe6N8xiAm18Ay4q1U4LKMde7MpDdPRN6GiiGCJMVTHuptGGmfj2Qfp2vcKSRSG79HJrQn",
        "821623ac165f07f172c86980254a43737332fd89ca36d33a57dc02d8026d9173",
        "7c55413e672f8691a9211eac6003109d2fdf224ba72c4d8d82353427a02bc136",
    ),
    (
        NetworkType.TESTNET,
        "9zsJP6KFF6ZGern5UkR7gyRXHFRTba6jG8JKnfzDySeqEdwPZaD8MNYGkjyADdVpWs7rXgyeu712JdxhX2k7d9SNB4TdRdS",
        "cb366a3b44f6aa5d94e03db06325b6929b9e75dbf19dcf2ba2d14eb2efa53651",
        "8789afa33dca295e301baef826cec028fa22b831822c1bdcf8a847a43a3bff59",
    ),
    (
        NetworkType.TESTNET,
        "A1SqL5oPjh8Km1At7mao7U1fNjWkzeSwvQ39GimMqvhBF3FUoJhx1zxL2i6XbHzzAXDhKetiwSmYQeVwG6sUgwJuEqPyjWq",
        "da78298fb6eb8f702698bec873bad703f4a51e1377a66d89ba977ca7f43b8e53",
        "eeb348f70afad971c50aa062f1d1544be64ef9cdc12475e030f2d295305e6e7a",
    ),
    (
        NetworkType.STAGENET,
        "55AJ4jJBhV6JsoqrEsAazTLrJjg9SA1SFReLUoXDudrsA9tdL9i2VkJefEbx3zrFRt6swuibPVySPGNzsNvyshrRNZbSDnD",
        "57e0c2fef80a1d6adfa3189134009076ad0ddc4c4668709355cea98524e9fc36",
        "b94fafe59d5037e126557665f76cd3232504ebd82500e05bf25801d853d182bf",
    ),
    (
        NetworkType.STAGENET,
        "5BQqg4HTWuN3j4NzBHTK31eTaygRXYxWRQW9dTD7qMuJSiVtskraSErXQ24FUBeifiV6NaQPmxLS559vbUT4xYUoF2fiGvH",
        "fcd35a53cef9a1104ae556f01cee0cdff2f18f2f2f6bde8c833d5bd980fe8999",
        "be2b1142a046bfb5bb21e1f2a49bd1a7f46e1c18b009b218d5962f663938707c",
    ),
    (
        NetworkType.STAGENET,
        "53CFYfjzcouW95hQ7AHvqS3GZ2UAAaRLKc1ymmhHATQTZxhtakpYcfjiRVzrRdxVZ5F8p61KSpPEmFu9DVRULRDkK4v1TCU",
        "23fdd143264794ae367083791bb8fd0d8f719b27b7b858d15a2b67d6eddd60c5",
        "0ebafc1284ab1af7a5ff4ade682bcc54817a319a00eede591344855c420beba0",
    ),
]


@pytest.mark.parametrize(
    "address",
    [
        None,
        "456",
        # Symbol '0' is not from base-58
        "40ccoSmrBTPJd5yf8VYCULh4J5rHQaXP1TeC8Cnqhd5H9Y2cMwkJ9w42euLmMghKtCiQcgZEiGYW1K6Ae4biZ7w1HLSexS6",
        # Invalid checksum
        "49ccoSmrBTPJd5yf8VYCULh4J5rHQaXP1TeC8Cnqhd5H9Y2cMwkJ9w42euLmMghKtCiQcgZEiGYW1K6Ae4biZ7w1HLSexS7",
        # 64-bit overflow
        "49ccoSmrBTPzzzzzzzzzzzh4J5rHQaXP1TeC8Cnqhd5H9Y2cMwkJ9w42euLmMghKtCiQcgZEiGYW1K6Ae4biZ7w1HLSexS6",
        # Subaddress (not supported)
        "8BE7uo9kWR6fFekhGHKJt87pkTzzNj2ikZMNmN7DUJf81y6Zygzbsk1CFzGMbS7fB7E2qr6A6EZfLYgxUfYvdDxEHrMPMA5",
    ],
)
def test_invalid_addresses(address):
    w = Wallet(address)
    assert w.valid() is False
    assert w.type() is NetworkType.INVALID


@pytest.mark.parametrize("network_type, address, spend_key, view_key", VALID_CASES)
def test_valid_addresses(network_type, address, spend_key, view_key):
    w = Wallet(address)
    assert w.type() is network_type
    assert w.valid() is True
    assert w.spend_public_key().hex() == spend_key
    assert w.view_public_key().hex() == view_key


def test_decode_returns_result_and_resets_type():
    w = Wallet(MAINNET_1)
    assert w.valid()
    assert w.decode("456") is False
    assert w.type() is NetworkType.INVALID
    assert w.decode(MAINNET_2) is True
    assert w.type() is NetworkType.MAINNET


def test_equality_and_ordering_follow_spend_key():
    a = Wallet(MAINNET_1)
    b = Wallet(MAINNET_1)
    c = Wallet(MAINNET_2)
    assert a == b
    assert a != c
    assert (a < c) == (a.spend_public_key() < c.spend_public_key())
    assert len({a, b, c}) == 2


def test_assign_with_valid_keys():
    source = Wallet(VALID_CASES[3][1])
    w = Wallet()
    assert w.valid() is False
    assert w.assign(source.spend_public_key(), source.view_public_key(), NetworkType.STAGENET) is True
    assert w.type() is NetworkType.STAGENET
    assert w.spend_public_key() == source.spend_public_key()
    assert w.view_public_key() == source.view_public_key()


def test_assign_rejects_invalid_point_and_keeps_state():
    source = Wallet(MAINNET_1)
    bad = Hash(b"\xff" * 32)
    assert source.assign(bad, source.view_public_key(), NetworkType.TESTNET) is False
    assert source.type() is NetworkType.MAINNET
    assert source.spend_public_key().hex() == VALID_CASES[0][2]


def test_is_valid_point_identity_and_sign():
    identity = b"\x01" + bytes(31)
    assert is_valid_point(identity) is True
    # x = 0 with a negative sign bit is not a valid encoding
    assert is_valid_point(b"\x01" + bytes(30) + b"\x80") is False


def test_is_valid_point_rejects_non_canonical_and_wrong_length():
    assert is_valid_point(b"\xff" * 32) is False
    assert is_valid_point(b"\x01" * 31) is False


@pytest.mark.parametrize("_type, _address, spend_key, view_key", VALID_CASES)
def test_known_keys_are_points(_type, _address, spend_key, view_key):
    assert is_valid_point(Hash(bytes.fromhex(spend_key)))
    assert is_valid_point(bytes.fromhex(view_key))