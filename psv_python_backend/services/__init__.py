"""Services for perspectivized stance vector analysis."""

from .consensus_analyzer import ConsensusAnalyzer
from .prompt_manager import PromptManager
from .stance_calculator import StanceCalculator
from .stance_oracle import StanceOracle

__all__ = [
    'ConsensusAnalyzer',
    'PromptManager',
    'StanceCalculator',
    'StanceOracle',
]
