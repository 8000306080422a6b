MAX_ORGANIZATION_LENGTH = 100
MAX_RESOURCE_PATH_LENGTH = 100
