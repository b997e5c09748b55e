import pytest

SHUFFLE = [2, 4, 0, 7, 1, 6, 5, 3]
CSTATE = b"Htemp99e"


def encrypt(key, frame):
    """Obfuscate a plain frame the way the device does before sending it."""
    ctmp = [((c >> 4) | (c << 4)) & 0xff for c in CSTATE]
    phase3 = [(frame[i] + ctmp[i]) & 0xff for i in range(8)]
    phase2 = [((phase3[i] << 3) | (phase3[(i + 1) % 8] >> 5)) & 0xff for i in range(8)]
    phase1 = [phase2[i] ^ key[i] for i in range(8)]
    return [phase1[o] for o in SHUFFLE]


def make_frame(code, value):
    hi, lo = value >> 8, value & 0xff
    return [code, hi, lo, (code + hi + lo) & 0xff, 0x0d, 0, 0, 0]


@pytest.fixture
def key():
    return bytes([0x01, 0x02, 0x03, 0x04, 0x05, 0x06, 0x07, 0x08])


@pytest.fixture(name="encrypt")
def encrypt_fixture():
    return encrypt


@pytest.fixture(name="make_frame")
def make_frame_fixture():
    return make_frame
