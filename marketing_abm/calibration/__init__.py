"""Calibration of the market model against historical sales."""

from .controller import CalibrationController, CalibrationResult, run_calibration
from .de import CustomSteadyEvolutionState, JFDEBreeder
from .evaluation import FAILED_SCORE, Evaluator, FunctionEvaluator, ModelEvaluator
from .individual import Fitness, FloatVectorSpecies, Individual, Population, Subpopulation
from .parameters import CalibrationParameter, ParameterSpace, ParameterTarget, TargetKind, parse_parameter
from .scoring import SalesFitnessFunction, ScoreBean, compute_interval, point_error
from .selection import RandomDeselector, TournamentDeselector
from .shade import SHADEBreeder, SHADEEvolutionState, SHADEExchanger, SHADESubpopulation
from .state import R_FAILURE, R_NOTDONE, R_SUCCESS, EvolutionState

__all__ = [
    "CalibrationController",
    "CalibrationResult",
    "run_calibration",
    "CustomSteadyEvolutionState",
    "JFDEBreeder",
    "FAILED_SCORE",
    "Evaluator",
    "FunctionEvaluator",
    "ModelEvaluator",
    "Fitness",
    "FloatVectorSpecies",
    "Individual",
    "Population",
    "Subpopulation",
    "CalibrationParameter",
    "ParameterSpace",
    "ParameterTarget",
    "TargetKind",
    "parse_parameter",
    "SalesFitnessFunction",
    "ScoreBean",
    "compute_interval",
    "point_error",
    "RandomDeselector",
    "TournamentDeselector",
    "SHADEBreeder",
    "SHADEEvolutionState",
    "SHADEExchanger",
    "SHADESubpopulation",
    "R_FAILURE",
    "R_NOTDONE",
    "R_SUCCESS",
    "EvolutionState",
]
