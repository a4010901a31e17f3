"""
Core Clarity Components
=======================

Secchi depth regression from multi-sensor Landsat reflectance:

- ClarityEngine: end-to-end harmonize -> sample -> train -> validate run
- DataProcessor: observation loading and input-contract validation
- fit_harmonization / apply_harmonization: per-band cross-sensor corrections
- build_features: band ratios and dominant wavelength feature matrix
- split_holdout / make_folds: leak-free spatiotemporal sampling
- run_search / fit_final: grid-searched XGBoost with fold-local scaling
- evaluate / stratified_metrics: hold-out scoring and breakdowns
"""

from .clarity_engine import ClarityEngine, PipelineResult, save_artifacts
from .colorimetry import dominant_wavelength
from .data_processor import DataProcessor
from .diagnostics import ExclusionReport
from .evaluation import Metrics, compute_metrics, evaluate, stratified_metrics
from .exceptions import (
    ClarityError,
    DataInsufficiencyError,
    DegenerateInputError,
    SchemaMismatchError,
    TrainingDivergenceError,
)
from .feature_utils import FeatureSet, build_features
from .harmonization import HarmonizationModel, apply_harmonization, fit_harmonization
from .hyperparam_search import expand_grid, fit_final, run_search
from .partitioner import FoldAssignment, assign_time_groups, make_folds, split_holdout
from .trained_model import TrainedModel

__all__ = [
    'ClarityEngine', 'PipelineResult', 'save_artifacts',
    'dominant_wavelength',
    'DataProcessor',
    'ExclusionReport',
    'Metrics', 'compute_metrics', 'evaluate', 'stratified_metrics',
    'ClarityError', 'DataInsufficiencyError', 'DegenerateInputError',
    'SchemaMismatchError', 'TrainingDivergenceError',
    'FeatureSet', 'build_features',
    'HarmonizationModel', 'apply_harmonization', 'fit_harmonization',
    'expand_grid', 'fit_final', 'run_search',
    'FoldAssignment', 'assign_time_groups', 'make_folds', 'split_holdout',
    'TrainedModel',
]
