import logging
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

import pandas as pd
import requests

from boptest_api.config import DEFAULT_TIMEOUT, get_settings
from boptest_api.endpoints import Endpoint, LocalEndpoint, ServiceEndpoint
from boptest_api.exceptions import (
    BOPTESTError,
    BOPTESTHTTPError,
    DataShapeError,
    InitializationError,
    NetworkError,
    RequestTimeoutError,
    SelectionError,
    SessionStateError,
    StepConfigError,
)
from boptest_api.timeseries import coerce_float, fetch_series, payload_to_frame
from boptest_api.utils.retry import NO_RETRY, RetryPolicy, with_retries

logger = logging.getLogger(__name__)

DEFAULT_INIT_VALS = {"start_time": 0, "warmup_period": 0}
POINT_CATEGORIES = ("inputs", "measurements", "forecast_points")
POINT_COLUMNS = ["Name", "Unit", "Description", "Minimum", "Maximum"]


class SessionState(Enum):
    SELECTED = "selected"
    INITIALIZED = "initialized"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(frozen=True)
class PointDescriptor:
    """Metadata of one input, measurement or forecast point."""
    name: str
    unit: Any = pd.NA
    description: Any = pd.NA
    minimum: Any = pd.NA
    maximum: Any = pd.NA


def _or_missing(value):
    # JSON null becomes an explicit missing marker, never 0 or ""
    return pd.NA if value is None else value


def parse_points(payload: Dict[str, Dict]) -> List[PointDescriptor]:
    """Parse a ``/inputs``, ``/measurements`` or ``/forecast_points`` payload."""
    if not isinstance(payload, dict):
        raise DataShapeError(f"Expected a mapping of point descriptors, got {type(payload).__name__}")
    points = []
    for name, fields in payload.items():
        fields = fields or {}
        points.append(PointDescriptor(
            name=name,
            unit=_or_missing(fields.get("Unit")),
            description=_or_missing(fields.get("Description")),
            minimum=_or_missing(fields.get("Minimum")),
            maximum=_or_missing(fields.get("Maximum")),
        ))
    return points


def points_frame(points: Sequence[PointDescriptor]) -> pd.DataFrame:
    """Return descriptors as a DataFrame with the BOPTEST column names."""
    records = [
        dict(zip(POINT_COLUMNS, asdict(p).values()))
        for p in points
    ]
    return pd.DataFrame(records, columns=POINT_COLUMNS)


def _error_message(response: requests.Response) -> str:
    """Extract the human readable message of a BOPTEST error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        errors = body.get("errors")
        if errors and isinstance(errors, list) and isinstance(errors[0], dict) and "msg" in errors[0]:
            return str(errors[0]["msg"])
        if "message" in body:
            return str(body["message"])
    return response.text


def _send(
        session: requests.Session,
        method: str,
        url: str,
        body: Optional[Dict] = None,
        timeout: float = DEFAULT_TIMEOUT,
        retry_policy: RetryPolicy = NO_RETRY,
        on_retry=None,
    ) -> requests.Response:
    """Issue one request, translating transport failures and non-2xx statuses."""
    def _call():
        return session.request(method, url, json=body, timeout=timeout)

    try:
        response = with_retries(_call, retry_policy, on_retry=on_retry)
    except requests.Timeout as e:
        raise RequestTimeoutError(f"{method} {url} timed out after {timeout}s") from e
    except requests.RequestException as e:
        raise NetworkError(f"{method} {url} failed: {e}") from e

    if not 200 <= response.status_code < 300:
        raise BOPTESTHTTPError(response.status_code, _error_message(response), url=url)
    return response


def _json(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise DataShapeError(f"Response from {response.url} is not JSON: {response.text[:200]}") from e


def select_testcase(
        base_url: str,
        testcase: str,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ) -> str:
    """Select ``testcase`` on BOPTEST-Service and return its test id."""
    timeout = timeout if timeout is not None else get_settings().timeout
    url = f"{base_url.rstrip('/')}/testcases/{testcase}/select"
    own_session = session is None
    session = session or requests.Session()
    try:
        response = _send(session, "POST", url, body={}, timeout=timeout)
    except BOPTESTHTTPError as e:
        raise SelectionError(f"Could not select BOPTEST testcase '{testcase}': {e.message}") from e
    finally:
        if own_session:
            session.close()
    if response.status_code != 200:
        raise SelectionError(f"Could not select BOPTEST testcase '{testcase}' (status {response.status_code})")
    body = _json(response)
    if not isinstance(body, dict) or "testid" not in body:
        raise DataShapeError(f"Select response for '{testcase}' has no testid")
    logger.info("Selected testcase=%s with testid=%s", testcase, body["testid"])
    return body["testid"]


class BOPTESTClient:
    """
    Client for one BOPTEST or BOPTEST-Service session.

    Parameters
    ----------

    endpoint : Endpoint
        Where requests go. ``LocalEndpoint`` for BOPTEST, ``ServiceEndpoint``
        for BOPTEST-Service.

    testcase : str
        Test case name.

    timeout : float
        Timeout for API requests in seconds.

    session : requests.Session
        HTTP session to use. A new one is created when omitted.

    retry_policy : RetryPolicy
        Retries applied to ``advance`` only. Pass ``NO_RETRY`` to disable.

    Attributes
    ----------
    step : float
        Control step in seconds, as last set or read.

    time : float
        Current simulation time in seconds, as last reported by the server.

    scenario : dict
        Scenario confirmed by the server.

    input_points, measurement_points, forecast_points : pd.DataFrame
        Point descriptors, loaded once per session by ``load_points``.

    state : SessionState
        Where the session is in its lifecycle.

    Notes
    -----
    ``advance`` is not idempotent on the server. When a request is retried
    after its response was lost, the simulation may have moved two steps.
    The client logs a warning when it detects this, but cannot prevent it.
    A client is not safe for concurrent use from several threads.
    """

    def __init__(
            self,
            endpoint: Endpoint,
            testcase: Optional[str] = None,
            timeout: Optional[float] = None,
            session: Optional[requests.Session] = None,
            retry_policy: RetryPolicy = RetryPolicy(),
        ):
        self.endpoint = endpoint
        self.testcase = testcase
        self.timeout = timeout if timeout is not None else get_settings().timeout
        # sessions passed in belong to the caller and are left open
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.retry_policy = retry_policy
        self.step: Optional[float] = None
        self.time: Optional[float] = None
        self.scenario: Dict = {}
        self.input_points: Optional[pd.DataFrame] = None
        self.measurement_points: Optional[pd.DataFrame] = None
        self.forecast_points: Optional[pd.DataFrame] = None
        self.state = SessionState.SELECTED
        self._advance_retried = False

    def __repr__(self):
        return f"BOPTESTClient(endpoint={self.endpoint!r}, testcase='{self.testcase}', state={self.state.value})"

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            self.stop()
        finally:
            self.close()
        return False

    def close(self) -> None:
        """Close the HTTP session if the client created it."""
        if self._owns_session:
            self.session.close()

    @property
    def testid(self) -> Optional[str]:
        return getattr(self.endpoint, "testid", None)

    def _request(self, method: str, service: str, body: Optional[Dict] = None, **kwargs) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        return _send(self.session, method, self.endpoint.url(service), body=body, **kwargs)

    def _handle_response(self, response: requests.Response) -> Any:
        """Unwrap the ``{"payload": ...}`` envelope."""
        body = _json(response)
        if not isinstance(body, dict) or "payload" not in body:
            raise DataShapeError(f"Response from {response.url} has no payload")
        return body["payload"]

    def _call(self, method: str, service: str, body: Optional[Dict] = None, **kwargs) -> Any:
        return self._handle_response(self._request(method, service, body, **kwargs))

    def _require_active(self, operation: str) -> None:
        if self.state is SessionState.STOPPED:
            raise SessionStateError(f"Cannot {operation}: testid {self.testid} was stopped")

    def get_version(self) -> str:
        """Get BOPTEST version."""
        return self._call("GET", "version")["version"]

    def get_name(self) -> str:
        """Get test case name."""
        return self._call("GET", "name")["name"]

    def initialize(self, start_time: float = 0, warmup_period: float = 0, **kwargs) -> Dict:
        """
        Initialize the simulation with start time and warmup period.

        Also used to reset a running simulation.

        Args:
            start_time: Start time in seconds.
            warmup_period: Warmup period in seconds.
            kwargs: Further initialization parameters passed to the server.

        Returns:
            Dict: Measurements at the start time.
        """
        self._require_active("initialize")
        body = {"start_time": start_time, "warmup_period": warmup_period, **kwargs}
        try:
            response = self._request("PUT", "initialize", body)
        except BOPTESTHTTPError as e:
            raise InitializationError(f"Error initializing testcase: {e.message}") from e
        if response.status_code != 200:
            raise InitializationError(f"Error initializing testcase (status {response.status_code})")
        payload = self._handle_response(response)
        self.time = float(payload["time"]) if isinstance(payload, dict) and "time" in payload else float(start_time)
        self.state = SessionState.INITIALIZED
        logger.info("Initialized testcase=%s at time=%s", self.testcase, self.time)
        return payload

    def get_step(self) -> float:
        """Get current control step."""
        self.step = float(self._call("GET", "step"))
        return self.step

    def set_step(self, step: float) -> float:
        """Set control step in seconds."""
        try:
            response = self._request("PUT", "step", {"step": step})
        except BOPTESTHTTPError as e:
            raise StepConfigError(f"Could not set step to {step}: {e.message}") from e
        if response.status_code != 200:
            raise StepConfigError(f"Could not set step to {step} (status {response.status_code})")
        self.step = float(step)
        logger.info("Set control step to %s s", step)
        return self.step

    def get_scenario(self) -> Dict:
        """Get current test scenario."""
        return self._call("GET", "scenario")

    def set_scenario(
            self,
            scenario: Optional[Dict] = None,
            electricity_price: Optional[str] = None,
            time_period: Optional[str] = None,
        ) -> Dict:
        """Set the test scenario and return it as confirmed by the server."""
        data = dict(scenario or {})
        if electricity_price:
            data['electricity_price'] = electricity_price
        if time_period:
            data['time_period'] = time_period

        result = self._call("PUT", "scenario", data)
        # Selecting a time period re-initializes the simulation
        if isinstance(result, dict) and isinstance(result.get("time_period"), dict):
            period_start = result["time_period"].get("time")
            if period_start is not None:
                self.time = float(period_start)
                self.state = SessionState.INITIALIZED
        self.scenario = self.get_scenario()
        logger.info("Initialized scenario with %r", self.scenario)
        return self.scenario

    def get_points(self, category: str) -> pd.DataFrame:
        """Get descriptors of ``inputs``, ``measurements`` or ``forecast_points``."""
        if category not in POINT_CATEGORIES:
            raise ValueError(f"Unknown point category '{category}', expected one of {POINT_CATEGORIES}")
        return points_frame(parse_points(self._call("GET", category)))

    def get_input_points(self) -> pd.DataFrame:
        return self.get_points("inputs")

    def get_measurement_points(self) -> pd.DataFrame:
        return self.get_points("measurements")

    def get_forecast_points(self) -> pd.DataFrame:
        return self.get_points("forecast_points")

    def load_points(self) -> None:
        """Fetch and cache the signals, which are constant for a test case."""
        self.input_points = self.get_input_points()
        self.measurement_points = self.get_measurement_points()
        self.forecast_points = self.get_forecast_points()

    def print_info(self) -> None:
        """Log the test case name, BOPTEST version and the point tables."""
        if self.input_points is None:
            self.load_points()
        logger.info("Testcase: %s", self.get_name())
        logger.info("BOPTEST version: %s", self.get_version())
        for title, points in (
                ("Control inputs", self.input_points),
                ("Measurements", self.measurement_points),
                ("Forecasts", self.forecast_points)):
            logger.info("%s:\n%s", title, points.to_string(index=False))

    def get_results(self, point_names: Sequence[str], start_time: float, final_time: float) -> pd.DataFrame:
        """Single ``/results`` request, without batching or type conversion."""
        point_names = list(point_names)
        payload = self._call("PUT", "results", {
            "point_names": point_names,
            "start_time": start_time,
            "final_time": final_time,
        })
        return payload_to_frame(payload, point_names)

    def get_forecast(self, point_names: Sequence[str], horizon: float, interval: float) -> pd.DataFrame:
        """Single ``/forecast`` request, without type conversion."""
        point_names = list(point_names)
        payload = self._call("PUT", "forecast", {
            "point_names": point_names,
            "horizon": horizon,
            "interval": interval,
        })
        return payload_to_frame(payload, point_names)

    def get_measurements(
            self,
            start_time: float,
            final_time: float,
            points: Optional[Sequence[str]] = None,
            convert_f64: bool = True,
            batch_target_points: Optional[int] = None,
        ) -> pd.DataFrame:
        """
        Query measurements and return them as a DataFrame.

        Args:
            start_time: Start time of the series in seconds.
            final_time: Final time of the series in seconds.
            points: Measurement point names. All measurement points when omitted.
            convert_f64: Convert the columns to float64.
            batch_target_points: Approximate number of values per request.
                Defaults to the ``BOPTEST_BATCH_TARGET_POINTS`` setting.
        """
        if points is None:
            points = self._point_names("measurement_points")
        if batch_target_points is None:
            batch_target_points = get_settings().batch_target_points
        return fetch_series(
            self, points, start_time, final_time,
            batch_target_points=batch_target_points,
            convert_f64=convert_f64,
        )

    def get_forecasts(
            self,
            horizon: float,
            interval: Optional[float] = None,
            points: Optional[Sequence[str]] = None,
            convert_f64: bool = True,
        ) -> pd.DataFrame:
        """
        Query forecasts from the current time step and return them as a DataFrame.

        Args:
            horizon: Forecast horizon from the current time in seconds.
            interval: Spacing of the forecast in seconds. Defaults to the control step.
            points: Forecast point names. All forecast points when omitted.
            convert_f64: Convert the columns to float64.
        """
        interval = interval if interval else self.step
        if points is None:
            points = self._point_names("forecast_points")
        data = self.get_forecast(points, horizon, interval)
        return coerce_float(data) if convert_f64 else data

    def _point_names(self, attribute: str) -> List[str]:
        if getattr(self, attribute) is None:
            self.load_points()
        return getattr(self, attribute)["Name"].tolist()

    def _warn_retry(self, attempt: int, exc: BaseException) -> None:
        logger.warning(
            "advance request failed (%s), retrying. If the server applied the "
            "first request the simulation may advance twice.", exc
        )
        self._advance_retried = True

    def advance(self, inputs: Optional[Dict[str, Union[float, int]]] = None, timeout: Optional[float] = None) -> Dict:
        """
        Advance simulation one control step.

        Args:
            inputs: Control inputs, ``"<signal>_u"`` values and
                ``"<signal>_activate"`` flags. Signals left out keep the
                baseline control. ``None`` values are not sent.
            timeout: Override the client timeout for this call.

        Returns:
            Dict: Measurements at the end of the step.
        """
        self._require_active("advance")
        data_inputs = {k: v for k, v in inputs.items() if v is not None} if inputs else {}
        previous_time = self.time
        self._advance_retried = False
        payload = self._call(
            "POST", "advance", data_inputs,
            timeout=timeout or self.timeout,
            retry_policy=self.retry_policy,
            on_retry=self._warn_retry,
        )
        if not isinstance(payload, dict):
            raise DataShapeError("advance payload is not a mapping")

        new_time = payload.get("time")
        if new_time is not None:
            new_time = float(new_time)
            if (self._advance_retried and previous_time is not None and self.step
                    and new_time > previous_time + self.step + 1e-6):
                logger.warning(
                    "Retried advance moved from t=%s to t=%s, expected one step of %s s",
                    previous_time, new_time, self.step
                )
            self.time = new_time
        self.state = SessionState.RUNNING
        return payload

    def get_kpi(self) -> Dict:
        """Get KPI values."""
        return self._call("GET", "kpi")

    def submit_results(self, api_key: str, tags: Optional[List[str]] = None) -> str:
        """Submit results to the BOPTEST dashboard."""
        data = {'api_key': api_key}
        if tags:
            for i, tag in enumerate(tags[:10], 1):
                data[f'tag{i}'] = tag
        return self._call("POST", "submit", data)['identifier']

    def stop(self) -> None:
        """
        Stop the test case and free its slot on BOPTEST-Service.

        Does nothing for plain BOPTEST. Errors reported by the server are
        logged, not raised; network failures still propagate.
        """
        if not self.endpoint.multi_tenant:
            logger.info("Only plants in BOPTEST-Service can be stopped")
            return None
        try:
            self._request("PUT", "stop")
        except BOPTESTHTTPError as e:
            logger.error("Could not stop testid %s: %s", self.testid, e.message)
            return None
        self.state = SessionState.STOPPED
        logger.info("Successfully stopped testid %s", self.testid)
        self.close()
        return None

    def establish(self, dt: float, init_vals: Optional[Dict] = None, scenario: Optional[Dict] = None) -> "BOPTESTClient":
        """Initialize, set the step and scenario, and load the point metadata."""
        init_vals = {**DEFAULT_INIT_VALS, **(init_vals or {})}
        self.initialize(**init_vals)
        self.set_step(dt)
        if scenario:
            self.set_scenario(scenario)
        self.load_points()
        logger.info("Initialized testcase=%s with step=%s s", self.testcase, dt)
        return self


def init_boptest(
        base_url: Optional[str] = None,
        dt: float = 900.0,
        init_vals: Optional[Dict] = None,
        scenario: Optional[Dict] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
        retry_policy: RetryPolicy = RetryPolicy(),
    ) -> BOPTESTClient:
    """
    Initialize a plain BOPTEST server with step size ``dt``.

    Args:
        base_url: URL of the BOPTEST server. Defaults to the ``BOPTEST_URL``
            setting.
        dt: Time step in seconds.
        init_vals: Parameters for the initialization, by default
            ``start_time=0`` and ``warmup_period=0``.
        scenario: Parameters for scenario selection.

    Returns:
        BOPTESTClient: The initialized session.
    """
    base_url = base_url or get_settings().boptest_url
    client = BOPTESTClient(
        LocalEndpoint(base_url), timeout=timeout, session=session, retry_policy=retry_policy
    )
    try:
        client.testcase = client.get_name()
        client.establish(dt, init_vals=init_vals, scenario=scenario)
    except BOPTESTError:
        client.close()
        raise
    return client


def init_boptest_service(
        base_url: Optional[str] = None,
        testcase: str = "bestest_hydronic",
        dt: float = 900.0,
        init_vals: Optional[Dict] = None,
        scenario: Optional[Dict] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
        retry_policy: RetryPolicy = RetryPolicy(),
    ) -> BOPTESTClient:
    """
    Select and initialize a test case on BOPTEST-Service with step size ``dt``.

    ``base_url`` defaults to the ``BOPTEST_SERVICE_URL`` setting. If anything
    fails after the test case was selected, the test id is stopped before
    the error is raised.
    """
    base_url = base_url or get_settings().boptest_service_url
    own_session = session is None
    session = session or requests.Session()
    try:
        testid = select_testcase(base_url, testcase, session=session, timeout=timeout)
    except BOPTESTError:
        if own_session:
            session.close()
        raise
    client = BOPTESTClient(
        ServiceEndpoint(base_url, testid), testcase=testcase,
        timeout=timeout, session=session, retry_policy=retry_policy,
    )
    client._owns_session = own_session
    try:
        client.establish(dt, init_vals=init_vals, scenario=scenario)
    except BOPTESTError:
        try:
            client.stop()
        except NetworkError as e:
            logger.warning("Could not release testid %s: %s", testid, e)
        finally:
            client.close()
        raise
    return client
