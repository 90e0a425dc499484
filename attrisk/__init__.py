# =============================================================================
# Attribute Disclosure Risk for Sequentially Synthesized Data
# =============================================================================
#
# This package estimates, for each confidential record, the probability that
# an intruder holding the released synthetic data guesses the record's
# synthesized values, using importance sampling over the posterior draws of
# the synthesis models.
#
# Modules:
#   - densities: Log densities of the supported model families
#   - design: Formula parsing and design-row construction
#   - steps: Synthesis step descriptors
#   - guesses: Candidate guess sets per synthesized variable
#   - indexing: Mixed-radix enumeration of guess combinations
#   - sampler: Importance-sampling estimate of combination mass
#   - estimator: Per-record risk summaries
#   - runner: Batch estimation across the confidential dataset
#   - data_loader: Load datasets, draws and steps from CSV/YAML
#   - visualization: Random-guess comparison figure
# =============================================================================

__version__ = "1.0.0"

from .errors import (
    AttributeRiskError,
    InvalidFamily,
    MissingTrueValue,
    InvalidConfiguration,
    NumericDegeneracy
)
from .config import RiskConfig, load_config
from .densities import get_family, log_density, density
from .design import PredictorSpec, DesignTransform, parse_formula
from .steps import SynthesisStep
from .guesses import GuessSet, build_guess_set
from .indexing import MixedRadixIndexer
from .tensor import ProbabilityTensor
from .sampler import ImportanceSampler, prepare_steps, synthetic_log_likelihood
from .estimator import RecordRiskEstimator, RiskRecord, estimate_record_risk
from .runner import AttributeRiskRunner, RiskSet, attribute_risk
from .data_loader import DataLoader, load_inputs
from .visualization import Visualizer, create_risk_figures

__all__ = [
    "AttributeRiskError",
    "InvalidFamily",
    "MissingTrueValue",
    "InvalidConfiguration",
    "NumericDegeneracy",
    "RiskConfig",
    "load_config",
    "get_family",
    "log_density",
    "density",
    "PredictorSpec",
    "DesignTransform",
    "parse_formula",
    "SynthesisStep",
    "GuessSet",
    "build_guess_set",
    "MixedRadixIndexer",
    "ProbabilityTensor",
    "ImportanceSampler",
    "prepare_steps",
    "synthetic_log_likelihood",
    "RecordRiskEstimator",
    "RiskRecord",
    "estimate_record_risk",
    "AttributeRiskRunner",
    "RiskSet",
    "attribute_risk",
    "DataLoader",
    "load_inputs",
    "Visualizer",
    "create_risk_figures",
]
