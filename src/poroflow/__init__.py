"""
*poroflow*

Finite-volume transient solver framework for flow and transport in porous media,
with adaptive time stepping around a Newton-type nonlinear solver.
"""

from .errors import *  # noqa
from .types import *  # noqa
from .config import *  # noqa
from .timing import *  # noqa
from .clock import *  # noqa
from .problems import *  # noqa
from .solvers import *  # noqa
from .integration import *  # noqa
from .simulate import *  # noqa
