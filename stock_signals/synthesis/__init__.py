"""
Signal synthesis: indicators + fundamentals → prompt → backend → Signal.

Modules
-------
backend     : GenerativeBackend ABC, GeminiBackend (httpx REST client),
              model registry and validated_model().
prompts     : build_analysis_prompt() — Vietnamese two-horizon analysis request.
synthesizer : SignalSynthesizer, SynthesisOutcome, fuse_horizons().
"""
