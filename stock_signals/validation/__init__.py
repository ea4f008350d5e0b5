"""
Generative-reply validation: text in, well-formed ``Signal`` out, always.

Modules
-------
keywords   : KEYWORD_TABLE (versioned data) + score_text() for the fallback
             classifier.
extraction : strip_code_fences(), extract_json_object() (depth-counted,
             string-aware), REPAIR_STEPS + parse_with_repairs().
validator  : ResponseValidator returning Parsed | Repaired | Fallback, plus
             the two-horizon DeepAnalysis normalizer.
"""
