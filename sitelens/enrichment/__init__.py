"""AI enrichment package — FAQs, content analysis, product copy, key info."""

from sitelens.enrichment.analyzer import (
    analyze_content,
    enhance_products,
    extract_key_info,
    generate_faqs,
    generate_training_data,
)
from sitelens.enrichment.llm import complete
from sitelens.enrichment.models import (
    ContentAnalysisRecord,
    EnhancedProductRecord,
    FAQRecord,
    KeyInfoRecord,
    TrainingExample,
)

__all__ = [
    "analyze_content",
    "enhance_products",
    "extract_key_info",
    "generate_faqs",
    "generate_training_data",
    "complete",
    "ContentAnalysisRecord",
    "EnhancedProductRecord",
    "FAQRecord",
    "KeyInfoRecord",
    "TrainingExample",
]
