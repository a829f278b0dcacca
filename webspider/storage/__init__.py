"""
Storage layer: duplicate suppression, output pipelines and the failure log.
"""

from .duplicate_remover import DuplicateRemover, HashSetDuplicateRemover, RedisDuplicateRemover
from .pipeline import Pipeline, ConsolePipeline, CollectorPipeline, JsonFilePipeline
from .failure_log import FailedRequestLog

__all__ = [
    'DuplicateRemover', 'HashSetDuplicateRemover', 'RedisDuplicateRemover',
    'Pipeline', 'ConsolePipeline', 'CollectorPipeline', 'JsonFilePipeline',
    'FailedRequestLog',
]
