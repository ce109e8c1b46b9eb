from .batch import BatchAnalyzer

__all__ = ['BatchAnalyzer']
