"""
Ingestion layer — market data provider contract and clients.

Submodules:
  provider         — PriceSeriesProvider ABC consumed by the pipeline
  vndirect_client  — VNDirect finfo API client (httpx) with fixture mode

The finfo API is public; no credentials are required.
"""
