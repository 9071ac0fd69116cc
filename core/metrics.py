from prometheus_client import Counter

DEPLOYMENT_COUNTER = Counter(
    'easy_deploy_requests_total',
    'Total number of deploy requests accepted by the trigger endpoint'
)

DEPLOYMENT_SUCCESS_COUNTER = Counter(
    'easy_deploy_deployments_total',
    'Total number of deployments that reached a running container'
)

DEPLOYMENT_FAILURE_COUNTER = Counter(
    'easy_deploy_failures_total',
    'Total number of failed deployments, by pipeline stage',
    ['stage']
)
