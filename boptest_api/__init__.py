"""Top-level package for boptest-api."""

__author__ = """Adhithyan Sakthivelu"""
__email__ = 'admkr.2010@gmail.com'
__version__ = '0.1.0'

from .config import BOPTEST_DEF_URL, BOPTEST_SERVICE_DEF_URL, Settings, get_settings
from .endpoints import Endpoint, LocalEndpoint, ServiceEndpoint
from .exceptions import (
    BOPTESTError,
    BOPTESTHTTPError,
    DataShapeError,
    InitializationError,
    NetworkError,
    RequestTimeoutError,
    SelectionError,
    SessionStateError,
    StepConfigError,
    TypeCoercionWarning,
)
from .boptest_suite import (
    BOPTESTClient,
    PointDescriptor,
    SessionState,
    init_boptest,
    init_boptest_service,
    select_testcase,
)
from .cached_plant import CachedPlant
from .controls import SignalTransform, control_inputs, plant_outputs, signal_control_inputs
from .kpi import KPI_LABELS, kpi_table
from .simulation import open_loop_sim
from .utils.logger import setup_logger
