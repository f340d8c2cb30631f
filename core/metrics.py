from prometheus_client import Counter

WEBHOOK_COUNTER = Counter(
    'notify_webhooks_total',
    'Total number of push webhooks accepted for dispatch'
)

DISPATCH_COUNTER = Counter(
    'notify_dispatches_total',
    'Dispatch outcomes by result',
    ['outcome']
)

MIRROR_FAILURE_COUNTER = Counter(
    'notify_mirror_failures_total',
    'Total number of mirror update steps that failed'
)

CONFIG_RELOAD_COUNTER = Counter(
    'notify_config_reloads_total',
    'Configuration reload attempts by result',
    ['result']
)
