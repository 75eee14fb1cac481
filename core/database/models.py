# Database models for accounts and their broker snapshots
from sqlalchemy import Column, Integer, BigInteger, String, Float, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from .connection import Base


class Account(Base):
    """Brokerage account with its Kite Connect credentials"""
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    family = Column(String)
    api_key = Column(String)
    api_secret = Column(String)
    request_token = Column(String)
    user_id = Column(String)         # Kite client id used by the login flow
    password = Column(String)
    totp_secret = Column(String)
    is_active = Column(Boolean, default=True, nullable=False)
    last_sync = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Holding(Base):
    """Demat holding snapshot, replaced wholesale on every sync"""
    __tablename__ = "holdings"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    trading_symbol = Column(String, nullable=False)
    exchange = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    average_price = Column(Float, nullable=False)
    last_price = Column(Float, nullable=False)
    market_value = Column(Float, nullable=False)
    pnl = Column(Float, nullable=False)
    pnl_percentage = Column(Float, nullable=False)
    instrument_token = Column(BigInteger)
    isin = Column(String)
    product = Column(String)
    collateral_quantity = Column(Integer, default=0)
    collateral_type = Column(String)
    t1_quantity = Column(Integer, default=0)
    realised_quantity = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_holdings_account_symbol', 'account_id', 'trading_symbol'),
    )


class Position(Base):
    """Net position snapshot with broker-computed blocked margin"""
    __tablename__ = "positions"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    trading_symbol = Column(String, nullable=False)
    exchange = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    average_price = Column(Float, nullable=False)
    last_price = Column(Float, nullable=False)
    market_value = Column(Float, nullable=False)
    pnl = Column(Float, nullable=False)
    pnl_percentage = Column(Float, nullable=False)
    product = Column(String, nullable=False)  # CNC, MIS, NRML
    side = Column(String, nullable=False)     # BUY, SELL, NONE
    margin_blocked = Column(Float)            # NULL when margin calculation was unavailable
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_positions_account_symbol', 'account_id', 'trading_symbol'),
    )


class Margin(Base):
    """Equity segment margins, one row per account"""
    __tablename__ = "margins"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, unique=True)
    segment = Column(String, nullable=False, default="EQUITY")
    enabled = Column(Boolean, nullable=False, default=True)
    net = Column(Float, nullable=False, default=0.0)
    debits = Column(Float, nullable=False, default=0.0)
    payout = Column(Float, nullable=False, default=0.0)
    liquid_collateral = Column(Float, nullable=False, default=0.0)
    stock_collateral = Column(Float, nullable=False, default=0.0)
    span = Column(Float, nullable=False, default=0.0)
    exposure = Column(Float, nullable=False, default=0.0)
    additional = Column(Float, nullable=False, default=0.0)
    delivery = Column(Float, nullable=False, default=0.0)
    option_premium = Column(Float, nullable=False, default=0.0)
    holding_sales = Column(Float, nullable=False, default=0.0)
    turnover = Column(Float, nullable=False, default=0.0)
    equity = Column(Float, nullable=False, default=0.0)
    m2m_realised = Column(Float, nullable=False, default=0.0)
    m2m_unrealised = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
