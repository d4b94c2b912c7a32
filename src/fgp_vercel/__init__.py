"""Vercel 관리 API를 로컬 소켓 RPC로 노출하는 FGP 데몬."""

__version__ = "0.1.0"
