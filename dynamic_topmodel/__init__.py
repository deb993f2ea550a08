from .model import DynamicTopmodel, Phase, run_dtm
from .config import RunConfig, resolve_config
from .parameters import UnitParameters, UnitTable
from .states import SimulationState, StepFluxes
from .celerity import ExponentialTransmissivity, LinearStorageDischarge, FluxStorageRelation
from .surface import OverflowPolicy, distribute_surface_excess
from .subsurface import update_subsurface
from .matrices import complementary_matrix
from .forcing import distribute_forcing
from .routing import build_routing_kernel, downstream_targets, route_channel_flows, to_discharge, to_specific
from .balance import RunResults, WaterBalance
from .display import HydrographPlot, TextProgress, StepSnapshot
from .metrics import nse, time_at_peak
from .exceptions import ConfigurationError, DynamicTopmodelError
from .io import load_csv, subset_period, load_units_csv, load_weights_csv, load_routing_csv
