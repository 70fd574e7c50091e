# seqgrad/functest/__init__.py
from .seq_checker import (DEFAULT_DELTA, DEFAULT_PREC, ScenarioResult, SeqRFuncChecker,
                          assert_passed, vecs_equal)
from .block_checker import BlockChecker

__all__ = [
    "DEFAULT_DELTA", "DEFAULT_PREC", "ScenarioResult", "SeqRFuncChecker",
    "assert_passed", "vecs_equal", "BlockChecker",
]
