from core.schemas import DeployRequest

# the trigger body is the pipeline's own request model
DeployPayload = DeployRequest

SUCCESS_MESSAGE = "Repository successfully processed"
INVALID_PAYLOAD = "Invalid request payload"
INVALID_URL = "Invalid URL"
INTERNAL_ERROR = "Internal server error"
