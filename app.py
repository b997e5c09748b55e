import argparse
import atexit
import logging
import sys
import threading

from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask, Response, render_template_string
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Gauge, generate_latest
from werkzeug.serving import make_server

from env_state import EnvironmentState
from mod_co2monitor import DeviceError, InvalidFrameError, generate_key, open_device, set_report
from poller import InvalidFramePolicy, Poller

logger = logging.getLogger(__name__)

REPORT_INTERVAL = 5  # seconds

INDEX_TEMPLATE = """
<!DOCTYPE html>
<html>
<head>
    <title>CO2 and Temperature</title>
</head>
<body>
    <h1>Current Readings</h1>
    <p>Temperature: {{ '%.2f'|format(temperature) }}°C</p>
    <p>CO2: {{ co2 }} ppm</p>
</body>
</html>
"""


def create_app(state):
    app = Flask(__name__)

    registry = CollectorRegistry()
    co2_gauge = Gauge("co2meter_co2_ppms", "CO2 reading in PPM.", registry=registry)
    temperature_gauge = Gauge("co2meter_temperature_celsius",
                              "Temperature reading in degree celsius.", registry=registry)
    # Gauges read the state on every scrape
    co2_gauge.set_function(lambda: float(state.co2()))
    temperature_gauge.set_function(state.temperature)

    @app.route('/')
    def index():
        return render_template_string(INDEX_TEMPLATE, temperature=state.temperature(), co2=state.co2())

    @app.route('/metrics')
    def metrics():
        return Response(generate_latest(registry), content_type=CONTENT_TYPE_LATEST)

    return app


def log_readings(state):
    logger.info("CO2: %d ppm,\tTemperature: %.02f C", state.co2(), state.temperature())


def start_reporting(state):
    scheduler = BackgroundScheduler()
    scheduler.add_job(func=log_readings, trigger="interval", seconds=REPORT_INTERVAL, args=[state])
    scheduler.start()

    # Shut down the scheduler when exiting the app
    atexit.register(lambda: scheduler.shutdown())
    return scheduler


def join_host_port(host, port):
    if ":" in host:
        return "[%s]:%s" % (host, port)
    return "%s:%s" % (host, port)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Export readings of a USB CO2 meter as Prometheus metrics.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    parser.add_argument('-d', '--device', required=True,
                        help='device to get readings from (eg: /dev/hidraw0)')
    parser.add_argument('--host', default='::', help='host to bind to')
    parser.add_argument('-p', '--port', default=9200, type=int, help='port to bind to')
    parser.add_argument('-q', '--quiet', action='store_true',
                        help='do not log readings every %d seconds' % REPORT_INTERVAL)
    parser.add_argument('--skip-decryption', action='store_true',
                        help='skip value decryption. This is needed for some CO2 meter models.')
    parser.add_argument('--on-invalid-frame', default=InvalidFramePolicy.STOP.value,
                        choices=[p.value for p in InvalidFramePolicy],
                        help='what to do when a frame fails its checksum: stop reading, '
                             'skip the frame or exit')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level,
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    state = EnvironmentState()
    address = join_host_port(args.host, args.port)

    try:
        with open_device(args.device) as device:
            key = generate_key()
            set_report(device, key)

            try:
                server = make_server(args.host, args.port, create_app(state), threaded=True)
            except OSError as e:
                logger.critical("Could not listen on %s: %s", address, e)
                sys.exit(1)
            serving = threading.Thread(target=server.serve_forever, daemon=True)
            serving.start()
            logger.info("Listening on http://%s/metrics", address)

            if not args.quiet:
                start_reporting(state)

            poller = Poller(device, key, state,
                            skip_decryption=args.skip_decryption,
                            on_invalid_frame=args.on_invalid_frame)
            poller.run()
    except (DeviceError, InvalidFrameError) as e:
        logger.critical("%s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Shutdown requested")
        return

    # Reading stopped; keep serving the last known values
    serving.join()


if __name__ == '__main__':
    main()
