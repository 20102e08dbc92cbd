"""
Risk manager tests
"""
import pytest

from daytrade.analytics.contracts import get_contract_spec
from daytrade.analytics.risk.manager import RiskManager
from daytrade.core.models import StrategyConfig, Position, Direction, ExitReason

from conftest import SESSION_TIME


def make_position(direction=Direction.LONG, entry=112000.0, tp=112833.0, sl=111850.0) -> Position:
    return Position(
        direction=direction,
        symbol="WIN",
        entry_price=entry,
        take_profit=tp,
        stop_loss=sl,
        quantity=1,
        point_value=0.20,
        entry_time=SESSION_TIME,
    )


class TestContracts:

    def test_known_contracts(self):
        assert get_contract_spec("WIN").point_value == 0.20
        assert get_contract_spec("WDO").point_value == 0.50

    def test_unknown_falls_back_to_win(self):
        assert get_contract_spec("XYZ") == get_contract_spec("WIN")


class TestTargetPoints:

    def test_pro_rata_share_of_daily_target(self):
        config = StrategyConfig(id="c", user_id="u", daily_profit_target=500, max_trades_per_day=3)
        points = RiskManager().calculate_target_points(config)
        assert points == 833
        assert points > 800

    def test_floor_of_one_point(self):
        config = StrategyConfig(id="c", user_id="u", daily_profit_target=1, max_trades_per_day=10, contracts=5)
        assert RiskManager().calculate_target_points(config) == 1

    def test_rounds_half_up(self):
        # 1 / 1 / 0.2 / 2 contracts = 2.5 points
        config = StrategyConfig(id="c", user_id="u", daily_profit_target=1, max_trades_per_day=1, contracts=5)
        assert RiskManager().calculate_target_points(config) == 1
        config = StrategyConfig(id="c", user_id="u", daily_profit_target=1, max_trades_per_day=1, contracts=2)
        assert RiskManager().calculate_target_points(config) == 3


class TestEntryLevels:

    def test_long_levels(self):
        config = StrategyConfig(id="c", user_id="u")
        position = RiskManager().open_position(config, Direction.LONG, 112000, SESSION_TIME)
        assert position.take_profit == 112833
        assert position.stop_loss == 111850
        assert position.quantity == 1
        assert position.point_value == 0.20
        assert position.user_id == "u"
        assert position.config_id == "c"

    def test_short_levels(self):
        config = StrategyConfig(id="c", user_id="u")
        take_profit, stop_loss = RiskManager().entry_levels(config, Direction.SHORT, 112000)
        assert take_profit == 111167
        assert stop_loss == 112150


class TestExitChecks:

    def test_take_profit_settles_at_level(self):
        action = RiskManager().evaluate(make_position(), 112900, StrategyConfig(id="c", user_id="u"))
        assert action.exit_reason is ExitReason.TAKE_PROFIT
        assert action.exit_price == 112833

    def test_stop_loss_settles_at_level(self):
        action = RiskManager().evaluate(make_position(), 111700, StrategyConfig(id="c", user_id="u"))
        assert action.exit_reason is ExitReason.STOP_LOSS
        assert action.exit_price == 111850

    def test_short_exits(self):
        position = make_position(Direction.SHORT, tp=111167, sl=112150)
        rm = RiskManager()
        assert rm.check_exit(position, 111100) == (ExitReason.TAKE_PROFIT, 111167)
        assert rm.check_exit(position, 112200) == (ExitReason.STOP_LOSS, 112150)
        assert rm.check_exit(position, 112000) is None

    def test_realized_result(self):
        position = make_position()
        assert RiskManager().realized_result(position, 112833) == pytest.approx(166.6)
        short = make_position(Direction.SHORT, tp=111167, sl=112150)
        assert RiskManager().realized_result(short, 112150) == pytest.approx(-30.0)


class TestTrailingStop:

    def test_long_tightens(self):
        position = make_position(sl=112000)
        assert RiskManager().trailing_stop(position, 112200, 50) == 112150

    def test_short_tightens(self):
        position = make_position(Direction.SHORT, tp=111000, sl=112500)
        assert RiskManager().trailing_stop(position, 112200, 50) == 112250

    def test_never_loosens(self):
        position = make_position(sl=112180)
        assert RiskManager().trailing_stop(position, 112200, 50) is None

    def test_evaluate_returns_new_stop(self):
        config = StrategyConfig(id="c", user_id="u", trailing_stop_points=50)
        action = RiskManager().evaluate(make_position(sl=112000), 112200, config)
        assert not action.should_exit
        assert action.new_stop_loss == 112150

    def test_disabled(self):
        config = StrategyConfig(id="c", user_id="u", trailing_stop_enabled=False)
        action = RiskManager().evaluate(make_position(sl=112000), 112200, config)
        assert not action.should_exit
        assert action.new_stop_loss is None
