from typing import Any, Optional

import structlog


class ComplianceLogger:
	"""Audit trail of who changed which record, written to the dedicated ``audit`` logger."""

	def __init__(self, logger_name: str = 'audit', standard: str = 'HIPAA'):
		self.standard = standard
		self.logger = structlog.get_logger(logger_name)

	def log_event(
		self,
		user_id: Optional[str],
		role: Optional[str],
		action: str,
		category: str,
		details: Optional[str] = None,
		severity: str = 'INFO',
		resource_type: Optional[str] = None,
		resource_id: Optional[str] = None,
		**extra: Any
	) -> None:
		"""Emit one audit event. Extra keyword arguments are attached as event fields."""
		log = self.logger.warning if severity.upper() == 'WARNING' else self.logger.info
		log(
			'audit_event',
			standard=self.standard,
			user_id=user_id or 'System',
			role=role,
			action=(action or 'UNKNOWN').upper(),
			category=category or 'GENERAL',
			resource_type=resource_type,
			resource_id=resource_id,
			details=details,
			**extra
		)

	def log_access(
		self,
		user_id: Optional[str],
		role: Optional[str],
		resource_type: str,
		resource_id: str,
		purpose: str,
		**kwargs: Any
	) -> None:
		"""Logs a data access event."""
		self.log_event(
			user_id=user_id,
			role=role,
			action='READ',
			category='DATA_ACCESS',
			details=f"Accessed {resource_type}:{resource_id} for {purpose}",
			resource_type=resource_type,
			resource_id=resource_id,
			**kwargs
		)


# Singleton instance for global import
compliance_logger = ComplianceLogger()
