# utils/sentinels.py
from typing import Self, ClassVar, Optional
from pydantic_core import core_schema

class ServerTimestamp:
	"""Placeholder for a timestamp the store assigns when the write lands."""

	_instance: ClassVar[Optional["ServerTimestamp"]] = None

	def __new__(cls) -> Self:
		if cls._instance is None:
			cls._instance = super().__new__(cls)
		return cls._instance

	def __repr__(self) -> str:
		return "SERVER_TIMESTAMP"

	@classmethod
	def __get_pydantic_core_schema__(cls, _source, _handler) -> core_schema.CoreSchema:
		# only the singleton itself validates
		def validate(v):
			if v is cls._instance:
				return v
			raise ValueError('value is not the ServerTimestamp sentinel')
		return core_schema.no_info_plain_validator_function(validate)


SERVER_TIMESTAMP = ServerTimestamp()
