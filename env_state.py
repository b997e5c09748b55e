import threading


class EnvironmentState:
    """Latest CO2 and temperature readings.

    Written by the poller only, read by the metrics endpoint and the periodic
    logger. Each field has its own lock; the two are not updated together.
    """

    def __init__(self):
        self._co2 = 0
        self._co2_lock = threading.Lock()
        self._temperature = 0.0
        self._temperature_lock = threading.Lock()

    def co2(self):
        with self._co2_lock:
            return self._co2

    def set_co2(self, co2):
        with self._co2_lock:
            self._co2 = co2

    def temperature(self):
        with self._temperature_lock:
            return self._temperature

    def set_temperature(self, temperature):
        with self._temperature_lock:
            self._temperature = temperature

    def apply(self, reading):
        if reading.kind == "co2":
            self.set_co2(reading.value)
        elif reading.kind == "temperature":
            self.set_temperature(reading.value)
