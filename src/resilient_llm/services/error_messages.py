"""Localized user-facing messages and recovery actions per error code."""

from resilient_llm.entities import SuggestedAction

# code -> locale -> message. "{status}" and "{message}" are filled in by the classifier.
USER_MESSAGES: dict[str, dict[str, str]] = {
    "API_CONTEXT_TOO_LONG": {
        "en": "The conversation is too long. Compact it or start a new conversation.",
        "zh": "对话内容过长，请使用压缩功能或开始新对话",
    },
    "API_INVALID_REQUEST": {
        "en": "The request was rejected as invalid. Please check your input.",
        "zh": "请求参数无效，请检查输入内容",
    },
    "AUTH_INVALID_API_KEY": {
        "en": "The API key is invalid or has expired. Please check your configuration.",
        "zh": "API 密钥无效或已过期，请检查配置",
    },
    "AUTH_PERMISSION_DENIED": {
        "en": "Access denied. Please check your account permissions and balance.",
        "zh": "访问被拒绝，请检查账户权限和余额",
    },
    "API_MODEL_NOT_FOUND": {
        "en": "The requested model does not exist or is not available.",
        "zh": "所请求的模型不存在或不可用",
    },
    "AUTH_RATE_LIMITED": {
        "en": "Too many requests. Please try again shortly.",
        "zh": "请求过于频繁，请稍后再试",
    },
    "API_OVERLOADED": {
        "en": "The model service is temporarily unavailable. Please retry shortly.",
        "zh": "Claude 服务暂时不可用，请稍后重试",
    },
    "API_UNKNOWN_ERROR": {
        "en": "API error ({status}): {message}",
        "zh": "API 错误 ({status}): {message}",
    },
    "NETWORK_CONNECTION_FAILED": {
        "en": "Network connection failed. Check your connection and retry.",
        "zh": "网络连接失败，请检查网络连接后重试",
    },
    "NETWORK_TIMEOUT": {
        "en": "The request timed out. Retry or check your network.",
        "zh": "请求超时，请重试或检查网络状况",
    },
    "STORAGE_QUOTA_EXCEEDED": {
        "en": "Storage is full. Clear the cache or free up space.",
        "zh": "存储空间不足，请清理缓存或释放空间",
    },
    "SDK_CONFIGURATION_ERROR": {
        "en": "Configuration error. Please check your settings.",
        "zh": "配置错误，请检查设置",
    },
    "UNKNOWN_ERROR": {
        "en": "An unknown error occurred: {message}",
        "zh": "发生未知错误: {message}",
    },
    "UNKNOWN_VALUE": {
        "en": "An unknown error occurred. Please retry or contact support.",
        "zh": "发生未知错误，请重试或联系支持",
    },
}

# code -> locale -> label, keyed separately so actions stay locale-independent.
ACTION_LABELS: dict[str, dict[str, str]] = {
    "trigger_compaction": {"en": "Compact conversation", "zh": "自动压缩"},
    "start_new_conversation": {"en": "Start new conversation", "zh": "开始新对话"},
    "open_provider_settings": {"en": "Check API key", "zh": "检查API密钥"},
    "open_billing": {"en": "Check account status", "zh": "检查账户状态"},
    "show_model_selector": {"en": "Choose another model", "zh": "选择其他模型"},
    "retry_later": {"en": "Retry later", "zh": "稍后重试"},
    "retry": {"en": "Retry", "zh": "重试"},
    "check_network": {"en": "Check network connection", "zh": "检查网络连接"},
    "clear_cache": {"en": "Clear cache", "zh": "清理缓存"},
    "open_settings": {"en": "Check settings", "zh": "检查配置"},
}

# code -> (action id, is_primary, is_destructive)
ACTIONS: dict[str, tuple[tuple[str, bool, bool], ...]] = {
    "API_CONTEXT_TOO_LONG": (("trigger_compaction", True, False), ("start_new_conversation", False, True)),
    "AUTH_INVALID_API_KEY": (("open_provider_settings", True, False),),
    "AUTH_PERMISSION_DENIED": (("open_billing", False, False),),
    "API_MODEL_NOT_FOUND": (("show_model_selector", True, False),),
    "AUTH_RATE_LIMITED": (("retry_later", True, False),),
    "API_OVERLOADED": (("retry", True, False),),
    "NETWORK_CONNECTION_FAILED": (("check_network", False, False), ("retry", True, False)),
    "STORAGE_QUOTA_EXCEEDED": (("clear_cache", True, True),),
    "SDK_CONFIGURATION_ERROR": (("open_settings", True, False),),
}

DOCUMENTATION: dict[str, str] = {
    "API_CONTEXT_TOO_LONG": "https://docs.anthropic.com/en/docs/build-with-claude/context-windows",
    "AUTH_INVALID_API_KEY": "https://console.anthropic.com/",
    "AUTH_PERMISSION_DENIED": "https://console.anthropic.com/settings/billing",
    "AUTH_RATE_LIMITED": "https://docs.anthropic.com/en/api/rate-limits",
}


def user_message(code: str, locale: str, **fields: object) -> str:
    """Look up the localized message for a code, falling back to English."""
    catalog = USER_MESSAGES.get(code, USER_MESSAGES["UNKNOWN_ERROR"])
    template = catalog.get(locale, catalog["en"])
    return template.format(**fields) if fields else template


def suggested_actions(code: str, locale: str) -> tuple[SuggestedAction, ...]:
    return tuple(
        SuggestedAction(
            label=ACTION_LABELS[action].get(locale, ACTION_LABELS[action]["en"]),
            action=action,
            is_primary=primary,
            is_destructive=destructive,
        )
        for action, primary, destructive in ACTIONS.get(code, ())
    )
