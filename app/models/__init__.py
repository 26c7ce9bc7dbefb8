from app.models.plant import Plant
from app.models.data_source_run import DataSourceRun

__all__ = [
    "Plant",
    "DataSourceRun",
]
