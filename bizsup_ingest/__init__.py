# -*- coding: utf-8 -*-
"""
bizsup_ingest - 정부 지원사업 공고 수집 파이프라인
"""

__version__ = "0.3.0"
