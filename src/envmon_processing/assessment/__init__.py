"""
Assessment of monitoring data: anomalies, statistics, QC, quality, insights
and scoring.

Every function here is pure; session state is passed in, never held.
"""

from .data_quality import DataQualityAssessment, assess_data_quality
from .descriptive import (
    StatisticsResult,
    build_chart_data,
    coefficient_of_variation,
    describe,
    mean,
    median,
    standard_deviation,
)
from .insights import Insight, InsightType, Severity, generate_insights
from .outliers import (
    AnomalyMethod,
    AnomalyResult,
    AnomalyType,
    detect_anomalies,
    detect_outliers_iqr,
    detect_outliers_zscore,
    percentile,
    screen_anomalies,
    trend_break_deviation,
)
from .quality_control import (
    QCData,
    QCResult,
    QCType,
    RecoveryWindow,
    calculate_blank_result,
    calculate_parallel_deviation,
    calculate_spike_recovery,
    evaluate_qc,
)
from .scoring import Grade, Score, ScoreDimension, calculate_score
from .trend import TrendPrediction, predict_trend

__all__ = [
    "AnomalyMethod",
    "AnomalyResult",
    "AnomalyType",
    "DataQualityAssessment",
    "Grade",
    "Insight",
    "InsightType",
    "QCData",
    "QCResult",
    "QCType",
    "RecoveryWindow",
    "Score",
    "ScoreDimension",
    "Severity",
    "StatisticsResult",
    "TrendPrediction",
    "assess_data_quality",
    "build_chart_data",
    "calculate_blank_result",
    "calculate_parallel_deviation",
    "calculate_score",
    "calculate_spike_recovery",
    "coefficient_of_variation",
    "describe",
    "detect_anomalies",
    "detect_outliers_iqr",
    "detect_outliers_zscore",
    "evaluate_qc",
    "generate_insights",
    "mean",
    "median",
    "percentile",
    "predict_trend",
    "screen_anomalies",
    "standard_deviation",
    "trend_break_deviation",
]
