from dataclasses import dataclass, field

@dataclass
class AssetSpec:
    symbol: str
    decimals: int
    price: float = 1.0  # in feed units (1.0 == peg)

@dataclass
class ScenarioConfig:
    # Time
    tick_seconds: int = 86400  # 1 tick = 1 day
    start_time: int = 1_700_000_000

    # Pools
    num_pools: int = 2
    assets: list[AssetSpec] = field(default_factory=lambda: [
        AssetSpec("USDC", 6),
        AssetSpec("DAI", 18),
        AssetSpec("USDT", 6),
    ])
    amplification: int = 200
    fee_bps: int = 4            # 0.04%
    admin_fee_bps: int = 5000   # 50% of fees
    ma_half_time: int = 600
    feed_decimals: int = 8
    initial_liquidity_per_asset: float = 1_000_000.0

    # Price feeds
    price_noise_bps: float = 5.0   # stdev of per-tick peg noise
    depeg_tick: int | None = None
    depeg_asset: str = "USDT"
    depeg_price: float = 0.97

    # Agents
    num_lps: int = 6
    num_traders: int = 10
    num_voters: int = 8
    num_bribers: int = 2
    lp_wallet_mean: float = 250_000.0
    trader_wallet_mean: float = 50_000.0
    voter_governance_mean: float = 10_000.0
    briber_wallet: float = 1_000_000.0

    # Activity per tick
    trades_per_tick: int = 12
    trade_size_mean: float = 5_000.0
    p_lp_deposit: float = 0.2
    p_lp_withdraw: float = 0.05
    p_lp_claim: float = 0.3
    p_vote: float = 0.15
    p_reallocate: float = 0.1
    p_vote_withdraw: float = 0.05
    slippage_tolerance_bps: int = 50

    # Governance / incentives
    governance_symbol: str = "GOV"
    reward_symbol: str = "GOV"
    lock_duration: int = 7 * 86400
    min_reward_duration: int = 86400
    reward_duration: int = 7 * 86400
    emission_epoch_ticks: int = 7
    emission_per_epoch: float = 50_000.0
    bribe_epoch_ticks: int = 7
    bribe_amount_mean: float = 5_000.0
    bribe_symbol: str = "USDC"

    # Metrics / logging
    metrics_stride: int = 1
    pool_metrics_stride: int = 1
    event_log_maxlen: int | None = 20_000
    debug_ledger: bool = False

    def __post_init__(self) -> None:
        self.assets = [a if isinstance(a, AssetSpec) else AssetSpec(**a) for a in self.assets]
        self.num_pools = max(1, int(self.num_pools))
        self.tick_seconds = max(1, int(self.tick_seconds))
        if self.reward_duration < self.min_reward_duration:
            self.reward_duration = self.min_reward_duration
        if self.bribe_symbol not in {a.symbol for a in self.assets}:
            self.bribe_symbol = self.assets[0].symbol
