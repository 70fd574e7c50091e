# seqgrad/rnn/__init__.py
from .block import (Block, BlockResult, BlockRResult, VecState, VecRState,
                    VecStateGrad, VecRStateGrad)
from .network_block import NetworkBlock, NetworkBlockResult, NetworkBlockRResult
from .seq_func import BlockSeqFunc, ResultSeqs, RResultSeqs

__all__ = [
    "Block", "BlockResult", "BlockRResult",
    "VecState", "VecRState", "VecStateGrad", "VecRStateGrad",
    "NetworkBlock", "NetworkBlockResult", "NetworkBlockRResult",
    "BlockSeqFunc", "ResultSeqs", "RResultSeqs",
]
