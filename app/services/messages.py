"""User-facing reply texts."""

from typing import Optional, Sequence

from app.services.knowledge_service import KnowledgeEntry
from app.services.payment_service import PaymentAttempt

SEARCH_RESULT_LIMIT = 3
SUMMARY_MAX_CHARS = 80

MSG_IMAGE_STORED = "📷 ได้รับรูปแล้ว พิมพ์ \"{trigger} อ่านรูป\" ภายใน {minutes} นาทีเพื่อให้บอทอ่านข้อความในรูป"
MSG_SEARCH_NOT_FOUND = "ไม่พบข้อมูลที่ตรงกับ \"{query}\""
MSG_SEARCH_HEADER = "🔎 ผลการค้นหา \"{query}\":"
MSG_SEARCH_MORE = "และอีก {count} รายการ"
MSG_CODE_NOT_FOUND = "ไม่พบข้อมูลรหัส {code}"
MSG_KNOWLEDGE_ERROR = "ขออภัย ระบบค้นหาข้อมูลไม่พร้อมใช้งานในตอนนี้"
MSG_PAYMENT_ASK_REFERENCE = "กรุณาส่งเลขอ้างอิงการชำระเงิน (ตัวเลขอย่างน้อย 5 หลัก) เพื่อตรวจสอบสถานะ"
MSG_PAYMENT_SUCCESS = "✅ การชำระเงินเลขที่ {attempt_id} สำเร็จแล้ว (สถานะ: {status})"
MSG_PAYMENT_NOT_SUCCESSFUL = "❌ การชำระเงินเลขที่ {attempt_id} ยังไม่สำเร็จ (สถานะ: {status})"
MSG_PAYMENT_NOT_FOUND = "ไม่พบรายการชำระเงินเลขที่ {attempt_id}"
MSG_PAYMENT_ERROR = "ขออภัย ไม่สามารถตรวจสอบสถานะการชำระเงินได้ในตอนนี้"
MSG_OCR_RESULT = "📝 ข้อความในรูป:\n{text}"
MSG_OCR_NO_TEXT = "ไม่พบข้อความในรูปนี้"
MSG_OCR_ERROR = "ขออภัย ไม่สามารถอ่านข้อความจากรูปได้ในตอนนี้"
MSG_AI_WORKING = "กำลังคิดคำตอบ รอสักครู่นะครับ..."
MSG_AI_ERROR = "ขออภัย ระบบ AI ตอบไม่ได้ในตอนนี้"
MSG_EMPTY_PROMPT = "มีอะไรให้ช่วยไหมครับ พิมพ์คำถามต่อท้ายชื่อบอทได้เลย"


def _summarize(text: str, max_chars: int = SUMMARY_MAX_CHARS) -> str:
    text = " ".join(text.split())
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 1].rstrip() + "…"


def format_image_stored(trigger: str, ttl_seconds: float) -> str:
    minutes = max(int(round(ttl_seconds / 60)), 1)
    return MSG_IMAGE_STORED.format(trigger=trigger, minutes=minutes)


def format_search_results(query: str, hits: Sequence[tuple[str, KnowledgeEntry]]) -> str:
    if not hits:
        return MSG_SEARCH_NOT_FOUND.format(query=query)

    lines = [MSG_SEARCH_HEADER.format(query=query)]
    for code, entry in hits[:SEARCH_RESULT_LIMIT]:
        summary = f"[{code}] {entry.title}"
        if entry.description:
            summary += f" - {_summarize(entry.description)}"
        lines.append(summary)

    remaining = len(hits) - SEARCH_RESULT_LIMIT
    if remaining > 0:
        lines.append(MSG_SEARCH_MORE.format(count=remaining))
    return "\n".join(lines)


def format_code_advice(code: str, entry: Optional[KnowledgeEntry]) -> str:
    if entry is None:
        return MSG_CODE_NOT_FOUND.format(code=code)

    parts = [f"📌 [{entry.code}] {entry.title}"]
    if entry.description:
        parts.append(entry.description)
    if entry.steps:
        parts.append("\n".join(f"{i}. {step}" for i, step in enumerate(entry.steps, 1)))
    return "\n\n".join(parts)


def format_payment_status(attempt_id: str, attempt: Optional[PaymentAttempt]) -> str:
    if attempt is None:
        return MSG_PAYMENT_NOT_FOUND.format(attempt_id=attempt_id)
    template = MSG_PAYMENT_SUCCESS if attempt.is_successful else MSG_PAYMENT_NOT_SUCCESSFUL
    return template.format(attempt_id=attempt.attempt_id, status=attempt.status)


def format_ocr_text(text: Optional[str]) -> str:
    if not text or not text.strip():
        return MSG_OCR_NO_TEXT
    return MSG_OCR_RESULT.format(text=text.strip())
