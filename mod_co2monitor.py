import collections
import fcntl
import logging
import math
import secrets

logger = logging.getLogger(__name__)

HIDIOCSFEATURE_9 = 0xC0094806
FRAME_SIZE = 8

CO2_CODE = 0x50
TEMPERATURE_CODE = 0x42


class DeviceError(OSError):
    """The sensor could not be opened, armed or read."""


class DeviceReadError(DeviceError):
    pass


class InvalidFrameError(ValueError):
    def __init__(self, frame):
        super().__init__("Data decryption failed: %s" % hd(frame))
        self.frame = frame


def decrypt(key, data):
    cstate = [0x48, 0x74, 0x65, 0x6D, 0x70, 0x39, 0x39, 0x65]
    shuffle = [2, 4, 0, 7, 1, 6, 5, 3]

    phase1 = [0] * 8
    for i, o in enumerate(shuffle):
        phase1[o] = data[i]

    phase2 = [0] * 8
    for i in range(8):
        phase2[i] = phase1[i] ^ key[i]

    phase3 = [0] * 8
    for i in range(8):
        phase3[i] = ((phase2[i] >> 3) | (phase2[(i - 1 + 8) % 8] << 5)) & 0xff

    ctmp = [0] * 8
    for i in range(8):
        ctmp[i] = ((cstate[i] >> 4) | (cstate[i] << 4)) & 0xff

    out = [0] * 8
    for i in range(8):
        out[i] = (0x100 + phase3[i] - ctmp[i]) & 0xff

    return out


def is_valid(frame):
    return frame[4] == 0x0d and (sum(frame[:3]) & 0xff) == frame[3]


def hd(d):
    return " ".join("%02X" % e for e in d)


def _round_half_away(x):
    return math.copysign(math.floor(abs(x) + 0.5), x)


def celsius_from_raw(raw):
    """Convert the sensor's Kelvin * 16 units to degrees Celsius, 2 decimals."""
    return _round_half_away((raw / 16.0 - 273.15) * 100) / 100


class Reading(collections.namedtuple("Reading", ["kind", "raw"])):
    __slots__ = ()

    @property
    def value(self):
        if self.kind == "temperature":
            return celsius_from_raw(self.raw)
        return self.raw


def extract_reading(frame):
    """Interpret a decoded (or pass-through) frame.

    Returns a Reading for CO2 and temperature frames and None for any other
    kind code.
    """
    op = frame[0]
    val = frame[1] << 8 | frame[2]

    if op == CO2_CODE:  # CO2 Value
        return Reading("co2", val)
    elif op == TEMPERATURE_CODE:  # Temperature Value
        return Reading("temperature", val)
    return None


def generate_key():
    return secrets.token_bytes(8)


def open_device(device):
    try:
        return open(device, "a+b", 0)
    except OSError as e:
        raise DeviceError("Could not open %s: %s" % (device, e)) from e


def set_report(fp, key):
    """Arm the device with the session key (HID SET_REPORT, report id 0)."""
    report = bytearray([0x00] + list(key))
    try:
        fcntl.ioctl(fp, HIDIOCSFEATURE_9, report)
    except OSError as e:
        raise DeviceError("ioctl failed: %s" % e) from e
    logger.debug("Sent session key to device")


def read_frame(fp):
    """Block until a full 8 byte frame has been read from the device."""
    data = bytearray()
    while len(data) < FRAME_SIZE:
        try:
            chunk = fp.read(FRAME_SIZE - len(data))
        except OSError as e:
            raise DeviceReadError("Read from device failed: %s" % e) from e
        if not chunk:
            raise DeviceReadError(
                "Unexpected end of device stream after %d of %d bytes"
                % (len(data), FRAME_SIZE))
        data.extend(chunk)
    return list(data)
