"""Corrective messages sent back to the model when execution goes wrong."""

SYSTEM_ERROR_PREFIX = "[SYSTEM_ERROR]"


def build_execution_error_prompt(error: str) -> str:
    return (
        f"{SYSTEM_ERROR_PREFIX} An error occurred while executing the previous instructions. "
        "Please analyze the error and create a new plan to fix it.\n\n"
        f"Error details:\n{error}"
    )


def build_detection_prompt(log: str) -> str:
    return (
        f"{SYSTEM_ERROR_PREFIX} The development server reported an error. "
        "Please analyze the error log and the project files to create a plan to fix it.\n\n"
        f"Error Log:\n{log}"
    )
