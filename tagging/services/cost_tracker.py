"""Model cost estimation from token usage."""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ModelPricing:
    """USD price per 1,000 tokens."""

    input: float
    output: float


MODEL_PRICING: dict[str, ModelPricing] = {
    "anthropic.claude-3-haiku-20240307-v1:0": ModelPricing(input=0.00025, output=0.00125),
    "anthropic.claude-3-sonnet-20240229-v1:0": ModelPricing(input=0.003, output=0.015),
    "anthropic.claude-3-5-sonnet-20240620-v1:0": ModelPricing(input=0.003, output=0.015),
    "anthropic.claude-3-5-sonnet-20241022-v2:0": ModelPricing(input=0.003, output=0.015),
    "gemini-1.5-flash": ModelPricing(input=0.000075, output=0.0003),
    "gemini-1.5-pro": ModelPricing(input=0.00125, output=0.005),
}

# Used for models missing from the table
DEFAULT_PRICING = ModelPricing(input=0.001, output=0.002)


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Estimate the USD cost of one model invocation.

    Args:
        model: Model identifier
        input_tokens: Prompt tokens consumed
        output_tokens: Completion tokens produced

    Returns:
        Estimated cost in US dollars
    """
    pricing = MODEL_PRICING.get(model, DEFAULT_PRICING)
    return (input_tokens / 1000) * pricing.input + (output_tokens / 1000) * pricing.output
