import enum
import logging
import time

from mod_co2monitor import InvalidFrameError, decrypt, extract_reading, hd, is_valid, read_frame

logger = logging.getLogger(__name__)

READING_INTERVAL = 0.2  # seconds


class InvalidFramePolicy(enum.Enum):
    STOP = "stop"
    SKIP = "skip"
    FATAL = "fatal"


class Poller:
    """Reads frames from the device and stores the readings in the state.

    ``run`` loops until the device fails (DeviceReadError is raised) or an
    invalid frame is seen and the policy is not ``SKIP``.
    """

    def __init__(self, device, key, state, skip_decryption=False,
                 interval=READING_INTERVAL, on_invalid_frame=InvalidFramePolicy.STOP):
        self._device = device
        self._key = key
        self._state = state
        self._skip_decryption = skip_decryption
        self._interval = interval
        self._on_invalid_frame = InvalidFramePolicy(on_invalid_frame)

    def step(self):
        """Read, decode and store a single frame. Returns False to stop polling."""
        # Every data measurement from the device comes in 8 byte chunks
        data = read_frame(self._device)

        if self._skip_decryption:
            frame = data
        else:
            frame = decrypt(self._key, data)
            if not is_valid(frame):
                return self._handle_invalid(frame)

        reading = extract_reading(frame)
        if reading is not None:
            logger.debug("Got %s reading: %s", reading.kind, reading.value)
            self._state.apply(reading)
        return True

    def _handle_invalid(self, frame):
        if self._on_invalid_frame is InvalidFramePolicy.FATAL:
            raise InvalidFrameError(frame)

        logger.warning("Data decryption failed: %s", hd(frame))
        if self._on_invalid_frame is InvalidFramePolicy.SKIP:
            return True

        logger.warning("Stopped reading from device, readings will no longer be updated")
        return False

    def run(self):
        while self.step():
            time.sleep(self._interval)
