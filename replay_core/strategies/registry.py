"""Build strategies from the `strategy` section of the params"""
from typing import Any, Dict, Optional

import pandas as pd

from replay_core.config.params_loader import ParamsLoader
from replay_core.errors import ConfigError
from replay_core.strategies.oracle import ORACLE_MODES, OracleStrategy
from replay_core.strategies.simple_trend import SimpleTrendStrategy

STRATEGY_NAMES = ('simple_trend',) + tuple(f'oracle_{mode}' for mode in ORACLE_MODES)


def build_strategy(
    name: str,
    symbol: str,
    last_ts: Optional[pd.Timestamp] = None,
    **kwargs: Any,
):
    """Instantiate a bundled strategy by name (simple_trend, oracle_<mode>)"""
    if name == 'simple_trend':
        return SimpleTrendStrategy(
            symbol,
            period=kwargs.get('period', 14),
            stop_loss_pct=kwargs.get('stop_loss_pct'),
            take_profit_pct=kwargs.get('take_profit_pct'),
        )
    if name.startswith('oracle_') and name[len('oracle_'):] in ORACLE_MODES:
        return OracleStrategy(
            name[len('oracle_'):],
            symbol,
            seed=kwargs.get('seed', 42),
            last_ts=last_ts,
            script=kwargs.get('script'),
        )
    raise ConfigError(f"Unknown strategy {name!r}; expected one of {STRATEGY_NAMES}")


def strategy_from_params(params: ParamsLoader, symbol: str, last_ts: Optional[pd.Timestamp] = None):
    """Build the strategy named by strategy.name using the remaining strategy.* keys"""
    section: Dict[str, Any] = dict(params.get('strategy', default={}) or {})
    name = section.pop('name', 'simple_trend')
    return build_strategy(name, symbol, last_ts=last_ts, **section)
