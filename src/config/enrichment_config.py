# config/enrichment_config.py

ENRICHMENT_CONFIG = {
    "llm": {
        "provider": "anthropic",
        "models": {
            "anthropic": "claude-3-haiku-20240307",
            "groq": "llama-3.3-70b-versatile",
        },
        "max_tokens": 4000,
        "timeout": 120,       # seconds per HTTP request
        "max_retries": 3,     # retries after the initial attempt
        "retry_base_delay": 60,  # seconds, doubled per retry
    },
    "rate_limit": {
        "tokens_per_minute": 40000,
        "safety_buffer": 0.2,
        "window_seconds": 60,
    },
    "queue": {
        "batch_size": 10,
        "api_chunk_size": 5,
        "inter_chunk_delay": 30,  # seconds between LLM calls of one batch
        "inter_batch_delay": 60,  # seconds between batches
    },
    "content_processing": {
        "max_words": 1500,
    },
}
