from ._rungekutta import ExplicitRungeKutta
from .rk4 import RK4
from .rkbs32 import RKBS32
from .rkdp54 import RKDP54
