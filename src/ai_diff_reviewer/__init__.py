"""
AI Diff Reviewer

Unified diff 기반 리뷰 생성 도구: diff 파싱, 변경 그룹화, 외부 추론 엔진 실행과
결과 정규화까지 하나의 리뷰 실행(run)으로 저장한다.
"""

__version__ = "1.0.0"

from .pipeline import ReviewPipeline

__all__ = ["ReviewPipeline", "__version__"]
