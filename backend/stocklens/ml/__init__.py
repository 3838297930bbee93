from stocklens.ml.strategies import AdvancedAnalysisStrategy, BaseAnalysisStrategy
from stocklens.ml.ollama_strategy import OllamaStrategy

__all__ = ["BaseAnalysisStrategy", "AdvancedAnalysisStrategy", "OllamaStrategy"]
