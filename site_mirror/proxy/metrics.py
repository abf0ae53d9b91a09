from prometheus_client import Counter

responses_by_strategy = Counter(
    "site_mirror_responses_total",
    "Upstream responses by body handling strategy",
    ["strategy"],
)

rewrite_fallbacks = Counter(
    "site_mirror_rewrite_fallbacks_total",
    "Rewrites that failed and fell back to the original body",
    ["strategy"],
)

upstream_failures = Counter(
    "site_mirror_upstream_failures_total",
    "Upstream failures by phase",
    ["phase"],
)
