"""
Reasoning step: prompt construction, the bounded model call, and validation
of the untrusted model output.

Modules
-------
prompt        : build_reasoning_request() — deterministic prompt + universe.
gateway       : ReasoningGateway — size/time bounds, single call, JSON extraction.
validator     : OutputValidator — schema, hallucination guard, weight gate.
hallucination : prose-level ticker-token heuristic.
openai_model  : OpenAIReasoningModel — ReasoningModel adapter for the OpenAI SDK.
"""
