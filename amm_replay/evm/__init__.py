"""EVM-based strategy execution.

- EVMStrategyExecutor: runs compiled fee-callback bytecode using pyrevm
- EVMFeeStrategy: adapts such bytecode to the FeeStrategy interface
"""

from amm_replay.evm.executor import EVMExecutionResult, EVMStrategyExecutor
from amm_replay.evm.adapter import EVMFeeStrategy

__all__ = [
    "EVMExecutionResult",
    "EVMStrategyExecutor",
    "EVMFeeStrategy",
]
