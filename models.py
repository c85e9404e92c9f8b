from typing import List, Optional

from pydantic import BaseModel, Field


class PeerCompany(BaseModel):
    id: str
    name: str
    symbol: str


class ValuationRecord(BaseModel):
    ticker: str
    company: str
    sector: str = "N/A"
    marketCap: float = 0.0
    netDebt: float = 0.0
    enterpriseValue: float = 0.0
    ltmEvToEbitda: float = 0.0
    ltmPeRatio: float = 0.0
    ltmPriceToSales: float = 0.0
    fwdEvToEbitda: float = 0.0               # filled by the forward-estimates pathway
    fwdPeRatio: float = 0.0
    fwdPriceToSales: float = 0.0
    priceToBook: float = 0.0
    dividendYield: float = 0.0               # percent units
    evToEbitda: float = 0.0                  # legacy alias of ltmEvToEbitda
    peRatio: float = 0.0
    priceToSales: float = 0.0


class PerformanceRecord(BaseModel):
    ticker: str
    company: str
    sector: str = "N/A"
    revenueGrowth: float = 0.0               # YoY, percent
    grossMargin: float = 0.0
    operatingMargin: float = 0.0
    netMargin: float = 0.0
    roic: float = 0.0
    roe: float = 0.0
    ebitdaMargin: float = 0.0


class QualitativeRecord(BaseModel):
    ticker: str
    company: str
    description: str
    country: str = "N/A"
    geographicMix: str = "N/A"
    segmentMix: str = "N/A"
    needsSegmentData: bool = Field(default=False, exclude=True)


class CompetitorsResponse(BaseModel):
    peerCompanies: List[PeerCompany] = []
    peerValuationData: List[ValuationRecord] = []
    peerPerformanceData: List[PerformanceRecord] = []
    peerQualitativeData: List[QualitativeRecord] = []


class PeerRowResponse(BaseModel):
    peerCompany: PeerCompany
    peerValuationData: ValuationRecord
    peerPerformanceData: PerformanceRecord
    peerQualitativeData: QualitativeRecord


class StoredPeerList(BaseModel):
    symbol: Optional[str] = None
    name: Optional[str] = None
    peers: Optional[List[str]] = None
    sector: Optional[str] = None
    industry: Optional[str] = None
