import json

import matplotlib
import numpy as np
import pytest
import requests

matplotlib.use("Agg")

from boptest_api import init_boptest, init_boptest_service
from boptest_api.utils.retry import RetryPolicy

BASE_URL = "http://fake-boptest"
TESTID = "7a3c2f10-test"

INPUTS = {
    "oveTSetHea_u": {"Unit": "K", "Description": "Zone heating setpoint", "Minimum": 288.15, "Maximum": 296.15},
    "oveTSetHea_activate": {"Unit": None, "Description": "Activation for zone heating setpoint", "Minimum": None, "Maximum": None},
    "ovePum_u": {"Unit": "1", "Description": "Pump control signal", "Minimum": 0, "Maximum": 1},
    "ovePum_activate": {"Unit": None, "Description": "Activation for pump control signal", "Minimum": None, "Maximum": None},
}
MEASUREMENTS = {
    "reaTRoo_y": {"Unit": "K", "Description": "Room air temperature", "Minimum": None, "Maximum": None},
    "reaQHea_y": {"Unit": "W", "Description": "Heating thermal power", "Minimum": None, "Maximum": None},
    "reaPPum_y": {"Unit": "W", "Description": "Pump electrical power", "Minimum": None, "Maximum": None},
}
FORECAST_POINTS = {
    "LowerSetp[1]": {"Unit": "K", "Description": "Lower temperature set point for thermal comfort"},
    "UpperSetp[1]": {"Unit": "K", "Description": "Upper temperature set point for thermal comfort"},
    "TDryBul": {"Unit": "K", "Description": "Dry bulb temperature at ground level"},
}


def measurement_value(name, t):
    if name == "reaTRoo_y":
        return 293.15 + (t % 86400) / 86400
    if name == "reaQHea_y":
        return 1000.0 + t / 3600
    return 10.0


def forecast_value(name, t):
    if name == "LowerSetp[1]":
        return 294.15
    if name == "UpperSetp[1]":
        return 297.15
    return 273.15 + t / 1e5


def make_response(status, body, url):
    response = requests.Response()
    response.status_code = status
    response._content = json.dumps(body).encode("utf-8")
    response.encoding = "utf-8"
    response.headers["Content-Type"] = "application/json"
    response.url = url
    return response


class LostResponse(Exception):
    """Fault marker: apply the request, then fail as if the response was lost."""


class FakeBoptestServer:
    """
    In-process stand-in for BOPTEST (``multi_tenant=False``) or
    BOPTEST-Service, used as the client's ``requests`` session.

    ``faults`` maps a service name to a list consumed one call at a time:
    an exception instance is raised, an int is returned as an error status,
    ``LostResponse()`` applies the call and then raises a connection error.
    """

    def __init__(self, multi_tenant=True, testcase="bestest_hydronic"):
        self.base_url = BASE_URL
        self.multi_tenant = multi_tenant
        self.testcase = testcase
        self.testid = TESTID
        self.calls = []
        self.faults = {}
        self.omit_points = {}
        self.step = 3600.0
        self.time = 0.0
        self.scenario = {"electricity_price": "constant", "time_period": None}
        self.advanced_inputs = []
        self.stopped = False
        self.closed = False

    def close(self):
        self.closed = True

    def count(self, service, method=None):
        return sum(1 for m, s, _ in self.calls if s == service and (method is None or m == method))

    def request(self, method, url, json=None, timeout=None):
        assert url.startswith(self.base_url), url
        parts = url[len(self.base_url):].strip("/").split("/")
        if parts[0] == "testcases":
            service = "select"
        else:
            service = parts[0]
        self.calls.append((method, service, json))

        faults = self.faults.get(service)
        lost = False
        if faults:
            fault = faults.pop(0)
            if isinstance(fault, LostResponse):
                lost = True
            elif isinstance(fault, BaseException):
                raise fault
            else:
                return make_response(fault, {"errors": [{"msg": f"Injected failure on {service}"}]}, url)

        if service == "select":
            status, body = self._select(parts[1])
        else:
            testid = parts[1] if len(parts) > 1 else None
            if self.multi_tenant and (testid != self.testid or self.stopped):
                status, body = 404, {"errors": [{"msg": f"Test id {testid} not found"}]}
            elif not self.multi_tenant and testid is not None:
                status, body = 404, {"message": "Not Found"}
            else:
                status, body = getattr(self, f"_{service}")(method, json or {})

        if lost:
            raise requests.ConnectionError("Connection reset by peer")
        return make_response(status, body, url)

    def _snapshot(self, t):
        y = {"time": t}
        y.update({name: measurement_value(name, t) for name in MEASUREMENTS})
        return y

    def _select(self, testcase):
        if not self.multi_tenant:
            return 404, {"message": "Not Found"}
        if testcase != self.testcase:
            return 404, {"errors": [{"msg": f"Test case {testcase} not found"}]}
        return 200, {"testid": self.testid}

    def _name(self, method, body):
        return 200, {"payload": {"name": self.testcase}}

    def _version(self, method, body):
        return 200, {"payload": {"version": "0.6.0"}}

    def _initialize(self, method, body):
        self.time = float(body.get("start_time", 0))
        self.advanced_inputs = []
        return 200, {"payload": self._snapshot(self.time)}

    def _step(self, method, body):
        if method == "PUT":
            self.step = float(body["step"])
            return 200, {"payload": None}
        return 200, {"payload": self.step}

    def _scenario(self, method, body):
        if method == "PUT":
            self.scenario.update(body)
            result = {k: True for k in body}
            if body.get("time_period"):
                self.time = 1814400.0
                result["time_period"] = self._snapshot(self.time)
            return 200, {"payload": result}
        return 200, {"payload": dict(self.scenario)}

    def _inputs(self, method, body):
        return 200, {"payload": INPUTS}

    def _measurements(self, method, body):
        return 200, {"payload": MEASUREMENTS}

    def _forecast_points(self, method, body):
        return 200, {"payload": FORECAST_POINTS}

    def _results(self, method, body):
        start, final = float(body["start_time"]), float(body["final_time"])
        times = np.arange(start, final, 30.0).tolist() + [final]
        payload = {"time": times}
        for name in body["point_names"]:
            if name in self.omit_points and start >= self.omit_points[name]:
                continue
            if name in MEASUREMENTS:
                payload[name] = [measurement_value(name, t) for t in times]
        return 200, {"payload": payload}

    def _forecast(self, method, body):
        horizon, interval = float(body["horizon"]), float(body["interval"])
        times = (self.time + np.arange(0.0, horizon + interval / 2, interval)).tolist()
        payload = {"time": times}
        for name in body["point_names"]:
            payload[name] = [forecast_value(name, t) for t in times]
        return 200, {"payload": payload}

    def _advance(self, method, body):
        unknown = set(body) - set(INPUTS)
        if unknown:
            return 400, {"errors": [{"msg": f"Unknown inputs {sorted(unknown)}"}]}
        self.advanced_inputs.append(dict(body))
        self.time += self.step
        return 200, {"payload": self._snapshot(self.time)}

    def _kpi(self, method, body):
        n = len(self.advanced_inputs)
        return 200, {"payload": {"ener_tot": 0.05 * n, "tdis_tot": 0.0, "cost_tot": 0.01 * n, "pgas_tot": None}}

    def _submit(self, method, body):
        return 200, {"payload": {"identifier": "submission-1"}}

    def _stop(self, method, body):
        self.stopped = True
        return 200, {"message": f"Test id {self.testid} stopped"}


FAST_RETRY = RetryPolicy(base_delay_s=0.0, max_delay_s=0.0)


@pytest.fixture
def server():
    return FakeBoptestServer()


@pytest.fixture
def local_server():
    return FakeBoptestServer(multi_tenant=False)


@pytest.fixture
def plant(server):
    return init_boptest_service(
        server.base_url, "bestest_hydronic", 300.0,
        session=server, retry_policy=FAST_RETRY,
    )


@pytest.fixture
def local_plant(local_server):
    return init_boptest(local_server.base_url, 300.0, session=local_server, retry_policy=FAST_RETRY)
