from .bouncing_ball import bouncing_ball
from .oscillator import damped_oscillator
from .platformer_jump import jump_constraints, jump_initial_state, platformer_jump
from .pushed_block import pushed_block
