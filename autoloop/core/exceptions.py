"""
Custom Exceptions for AutoLoop

This module defines custom exception types for better error handling and retry logic.
Celery tasks retry an AutoloopException only when its retry_allowed flag is set.

Exception Hierarchy:
- AutoloopException (base)
  - WorkflowError
    - GraphValidationError (don't retry)
    - GraphExecutionError (retry unless the cause was not retryable)
  - NodeExecutionError (aborts the run)
    - NodeConfigurationError
    - CustomCodeError (don't retry)
    - LinkedInError
    - WhatsAppError
  - IntegrationError
    - TransientSendError (retried in-process before surfacing)
  - CredentialsError (don't retry)
  - ScrapingError
"""

from typing import Optional


class AutoloopException(Exception):
    """Base exception for all AutoLoop errors"""

    def __init__(self, message: str, retry_allowed: bool = True):
        super().__init__(message)
        self.message = message
        self.retry_allowed = retry_allowed


# ============================================================================
# WORKFLOW ERRORS
# ============================================================================

class WorkflowError(AutoloopException):
    """Base class for workflow-related errors"""
    pass


class GraphValidationError(WorkflowError):
    """
    Workflow definition is invalid (unknown node type, bad config, missing workflow).
    Should NOT be retried - fix the workflow definition.
    """

    def __init__(self, message: str):
        super().__init__(message, retry_allowed=False)


class GraphExecutionError(WorkflowError):
    """
    Workflow run finished unsuccessfully (node failure, depth limit).
    Retried by the job queue unless the failure came from something a retry
    cannot fix (invalid definition, custom code).
    """

    def __init__(self, message: str, execution_id: Optional[str] = None, retry_allowed: bool = True):
        super().__init__(message, retry_allowed=retry_allowed)
        self.execution_id = execution_id


# ============================================================================
# NODE ERRORS
# ============================================================================

class NodeExecutionError(AutoloopException):
    """
    A node handler failed in a way that aborts the whole run.
    The walker catches it, logs it to the transcript and marks the run failed.
    """

    def __init__(self, message: str, node_id: Optional[str] = None):
        super().__init__(message, retry_allowed=True)
        self.node_id = node_id


class NodeConfigurationError(NodeExecutionError):
    """Node is missing required configuration (e.g., no template selected)"""
    pass


class CustomCodeError(NodeExecutionError):
    """
    User-supplied custom code raised an exception.
    Retrying will not help unless the data changes.
    """

    def __init__(self, message: str, node_id: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message, node_id=node_id)
        self.retry_allowed = False
        self.code = code


class LinkedInError(NodeExecutionError):
    """LinkedIn scrape or message automation failed"""
    pass


class WhatsAppError(NodeExecutionError):
    """WhatsApp Business API send failed"""
    pass


# ============================================================================
# INTEGRATION ERRORS
# ============================================================================

class IntegrationError(AutoloopException):
    """Base class for outbound collaborator failures (Gmail, AI, HTTP)"""
    pass


class TransientSendError(IntegrationError):
    """
    Network-level failure (connection refused, timeout, host unreachable).
    Retried with exponential backoff before being treated as a send failure.
    """

    def __init__(self, message: str):
        super().__init__(message, retry_allowed=True)


# ============================================================================
# CREDENTIALS ERRORS
# ============================================================================

class CredentialsError(AutoloopException):
    """
    Credentials not found or invalid (OAuth token, API key, session cookie).
    Should NOT be retried - fix the credentials.
    """

    def __init__(self, message: str, user_id: Optional[str] = None):
        super().__init__(message, retry_allowed=False)
        self.user_id = user_id


# ============================================================================
# SCRAPING ERRORS
# ============================================================================

class ScrapingError(AutoloopException):
    """Scraper source failed or is not registered"""

    def __init__(self, message: str, source: Optional[str] = None, retry_allowed: bool = True):
        super().__init__(message, retry_allowed=retry_allowed)
        self.source = source

