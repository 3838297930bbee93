# Pydantic Schemas — request/response and domain data contracts
