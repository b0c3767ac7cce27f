from app.services.dispatcher import ReplyContext, ReplyDispatcher
from app.services.intent_service import (
    AiChat,
    ClassifiedIntent,
    CodeLookup,
    Ignore,
    IntentKind,
    OcrRequest,
    PaymentCheck,
    Search,
    classify,
)
from app.services.pending_images import PendingImage, PendingImageStore
from app.services.source_key import SourceKey, SourceKind, resolve_source_key
