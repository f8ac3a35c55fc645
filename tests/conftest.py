# The test fixtures use addresses on the reserved ".test" domain; email-validator
# only accepts those when its documented test-environment switch is on.
import email_validator

email_validator.TEST_ENVIRONMENT = True
