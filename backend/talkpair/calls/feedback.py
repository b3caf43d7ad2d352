# talkpair/calls/feedback.py
import logging

logger = logging.getLogger(__name__)


async def generate_grammar_feedback(call_id: str, *, repository, analyzer):
    """
    통화 전체 transcript를 이어붙여 문법 분석 후 저장.
    transcript가 없으면 아무것도 안 함. 예외는 호출자에게 그대로 올림
    """
    full_text = await repository.transcript_text(call_id)
    if not full_text:
        logger.info("call %s has no transcript, skipping grammar feedback", call_id)
        return None

    analysis = await analyzer.analyze(full_text)
    if analysis is None:
        return None

    feedback = await repository.save_feedback(call_id, full_text, analysis)
    logger.info("grammar feedback saved for call %s (score=%s)", call_id, analysis.overall_score)
    return feedback
