"""
Risk aggregation and full-analysis tests
"""
import pytest
from unittest.mock import AsyncMock

from data_sources.helius import TokenHolder
from infrastructure.errors import ProviderError, RateLimitError
from services.risk_analyzer import (
    RiskAnalyzer,
    aggregate,
    create_safe_risk_score,
    create_unknown_risk_score,
    format_risk_score,
    get_risk_level,
    normalize_score,
    should_warn,
    summarize_risk,
)
from services.risk_types import (
    ContractRisk,
    HolderRisk,
    HoneypotRisk,
    LiquidityRisk,
    RiskLevel,
    RiskScore,
    warning,
)

TOKEN = "0x" + "a" * 40
MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"


class TestNormalization:

    @pytest.mark.parametrize("raw,expected", [
        (0, 0),
        (13, 10),
        (18, 14),
        (19, 15),
        (40, 31),
        (65, 50),
        (130, 100),
        (200, 100),
    ])
    def test_normalize_score(self, raw, expected):
        assert normalize_score(raw) == expected

    @pytest.mark.parametrize("score,level", [
        (0, RiskLevel.LOW),
        (14, RiskLevel.LOW),
        (15, RiskLevel.MEDIUM),
        (29, RiskLevel.MEDIUM),
        (30, RiskLevel.HIGH),
        (49, RiskLevel.HIGH),
        (50, RiskLevel.CRITICAL),
        (100, RiskLevel.CRITICAL),
    ])
    def test_level_boundaries(self, score, level):
        assert get_risk_level(score) == level

    def test_format_risk_score(self):
        assert format_risk_score(14) == "14 (Low Risk)"
        assert format_risk_score(50) == "50 (Critical Risk)"


class TestAggregate:

    def test_warnings_sorted_by_severity_keeping_source_order(self):
        honeypot = HoneypotRisk(score=5, warnings=(warning("SELL_TAX", RiskLevel.MEDIUM, "tax"),))
        contract = ContractRisk(score=15, warnings=(
            warning("NOT_OPEN_SOURCE", RiskLevel.HIGH, "closed"),
            warning("PAUSABLE", RiskLevel.MEDIUM, "pause"),
        ))
        holders = HolderRisk(score=2, warnings=(warning("MILD_CONCENTRATION", RiskLevel.LOW, "mild"),))
        liquidity = LiquidityRisk(score=15, warnings=(warning("VERY_LOW_LIQUIDITY", RiskLevel.CRITICAL, "thin"),))

        score = aggregate(TOKEN, "ethereum", honeypot, contract, holders, liquidity)

        assert [w.code for w in score.warnings] == [
            "VERY_LOW_LIQUIDITY",
            "NOT_OPEN_SOURCE",
            "SELL_TAX",
            "PAUSABLE",
            "MILD_CONCENTRATION",
        ]
        assert score.total_score == normalize_score(37)
        assert score.level == RiskLevel.MEDIUM

    def test_total_never_exceeds_100(self):
        score = aggregate(
            TOKEN, "base",
            HoneypotRisk(score=50), ContractRisk(score=30),
            HolderRisk(score=25), LiquidityRisk(score=25),
        )
        assert score.total_score == 100
        assert score.level == RiskLevel.CRITICAL

    def test_wire_shape(self):
        score = create_safe_risk_score(TOKEN, "ethereum", 1234.0)
        data = score.to_dict()

        assert data["tokenAddress"] == TOKEN
        assert data["chainId"] == "ethereum"
        assert data["totalScore"] == 0
        assert data["level"] == "low"
        assert data["liquidity"]["lpLockedPercent"] == 100.0
        assert data["contract"]["renounced"] is True
        assert RiskScore.from_dict(data) == score


class TestCanonicalScores:

    def test_safe_score(self):
        score = create_safe_risk_score(TOKEN, "base", 42.0)
        assert score.total_score == 0
        assert score.level == RiskLevel.LOW
        assert score.warnings == ()
        assert score.liquidity.liquidity == 42.0

    def test_unknown_score_with_thin_liquidity(self):
        score = create_unknown_risk_score(TOKEN, "ethereum", 5_000)
        assert score.total_score == 25
        assert score.level == RiskLevel.MEDIUM
        assert [w.code for w in score.warnings] == ["LOW_LIQ", "UNVERIFIED"]
        assert score.warnings[0].severity == RiskLevel.HIGH
        assert score.liquidity.score == 15

    def test_unknown_score_with_healthy_liquidity(self):
        score = create_unknown_risk_score(TOKEN, "ethereum", 20_000)
        assert [w.code for w in score.warnings] == ["UNVERIFIED"]
        assert score.liquidity.score == 15

        deep = create_unknown_risk_score(TOKEN, "ethereum", 60_000)
        assert deep.liquidity.score == 5
        assert deep.total_score == 25


class TestRiskAnalyzer:

    @pytest.mark.asyncio
    async def test_zero_address_short_circuits(self, mock_clients, test_addresses):
        analyzer = RiskAnalyzer(mock_clients)

        score = await analyzer.analyze(test_addresses["ZERO"], "ethereum", 5)

        assert score.total_score == 0
        assert score.level == RiskLevel.LOW
        mock_clients.goplus.get_token_security.assert_not_awaited()
        assert analyzer.get_stats()["safe"] == 1

    @pytest.mark.asyncio
    async def test_unknown_token(self, mock_clients):
        analyzer = RiskAnalyzer(mock_clients)

        score = await analyzer.analyze(TOKEN, "ethereum", 5_000)

        assert score.total_score == 25
        assert [w.code for w in score.warnings] == ["LOW_LIQ", "UNVERIFIED"]
        assert analyzer.get_stats()["unknown"] == 1

    @pytest.mark.asyncio
    async def test_goplus_down_gives_unknown(self, mock_clients):
        mock_clients.goplus.get_token_security = AsyncMock(side_effect=ProviderError("goplus"))
        analyzer = RiskAnalyzer(mock_clients)

        score = await analyzer.analyze(TOKEN, "base", 20_000)

        assert score.total_score == 25
        assert [w.code for w in score.warnings] == ["UNVERIFIED"]

    @pytest.mark.asyncio
    async def test_rate_limit_reaches_caller(self, mock_clients):
        mock_clients.goplus.get_token_security = AsyncMock(side_effect=RateLimitError("goplus", 30))
        analyzer = RiskAnalyzer(mock_clients)

        with pytest.raises(RateLimitError) as exc_info:
            await analyzer.analyze(TOKEN, "ethereum", 0)
        assert exc_info.value.retry_after == 30

    @pytest.mark.asyncio
    async def test_clean_evm_token(self, mock_clients, security_factory):
        mock_clients.goplus.get_token_security = AsyncMock(return_value=security_factory())
        analyzer = RiskAnalyzer(mock_clients)

        score = await analyzer.analyze(TOKEN, "ethereum", 500_000)

        assert score.total_score == 0
        assert score.level == RiskLevel.LOW
        assert score.warnings == ()
        assert score.holders.total_holders == 5000
        assert analyzer.get_stats()["analyzed"] == 1

    @pytest.mark.asyncio
    async def test_mixed_risk_evm_token(self, mock_clients, security_factory):
        mock_clients.goplus.get_token_security = AsyncMock(return_value=security_factory(
            sell_tax="0.15",
            is_open_source="0",
            holder_count="150",
        ))
        analyzer = RiskAnalyzer(mock_clients)

        score = await analyzer.analyze(TOKEN, "ethereum", 5_000)

        # raw 5 + 15 + 5 + 15 = 40
        assert score.total_score == 31
        assert score.level == RiskLevel.HIGH
        assert [w.code for w in score.warnings] == [
            "VERY_LOW_LIQUIDITY",
            "NOT_OPEN_SOURCE",
            "SELL_TAX",
            "LOW_HOLDERS",
        ]
        assert summarize_risk(score) == "Liquidity under $10k ($5,000)"
        assert should_warn(score)

    @pytest.mark.asyncio
    async def test_solana_token(self, mock_clients):
        mock_clients.goplus.get_token_security = AsyncMock(return_value={
            "mintable": {"status": "0"},
            "freezable": {"status": "0"},
        })
        mock_clients.helius.get_top_holders = AsyncMock(
            return_value=[TokenHolder(f"W{i}", 2, 2.0) for i in range(20)]
        )
        mock_clients.helius.get_token_holder_count = AsyncMock(return_value=5000)
        analyzer = RiskAnalyzer(mock_clients)

        score = await analyzer.analyze(MINT, "solana", 500_000)

        # Only the missing LP lock data scores (10 raw)
        assert [w.code for w in score.warnings] == ["LP_NOT_LOCKED"]
        assert score.total_score == 8
        assert score.contract.verified
        assert score.holders.top10_percent == pytest.approx(20.0)

    @pytest.mark.asyncio
    async def test_honeypot_is_flagged(self, mock_clients, security_factory):
        mock_clients.goplus.get_token_security = AsyncMock(return_value=security_factory(is_honeypot="1"))
        analyzer = RiskAnalyzer(mock_clients)

        score = await analyzer.analyze(TOKEN, "base", 500_000)

        assert score.honeypot.score == 50
        assert score.warnings[0].code == "HONEYPOT"
        assert should_warn(score)
        assert summarize_risk(score) == "Token is a honeypot - cannot sell"


class TestQuickRiskCheck:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides,reason", [
        ({"is_honeypot": "1"}, "Honeypot detected"),
        ({"cannot_sell_all": "1"}, "Cannot sell tokens"),
        ({"sell_tax": "0.6"}, "Sell tax: 60%"),
        ({"owner_change_balance": "1"}, "Owner can modify balances"),
    ])
    async def test_red_flags(self, mock_clients, security_factory, overrides, reason):
        mock_clients.goplus.get_token_security = AsyncMock(return_value=security_factory(**overrides))
        result = await RiskAnalyzer(mock_clients).quick_risk_check("ethereum", TOKEN)
        assert result.is_high_risk
        assert result.reason == reason

    @pytest.mark.asyncio
    async def test_clean_or_unavailable(self, mock_clients, security_factory):
        analyzer = RiskAnalyzer(mock_clients)
        assert not (await analyzer.quick_risk_check("ethereum", TOKEN)).is_high_risk

        mock_clients.goplus.get_token_security = AsyncMock(return_value=security_factory())
        assert not (await analyzer.quick_risk_check("ethereum", TOKEN)).is_high_risk

        mock_clients.goplus.get_token_security = AsyncMock(side_effect=ProviderError("goplus"))
        assert not (await analyzer.quick_risk_check("ethereum", TOKEN)).is_high_risk
