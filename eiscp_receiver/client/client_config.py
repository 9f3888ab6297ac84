# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
eISCP receiver client session configuration.
"""

from __future__ import annotations

import os
import json

from ..internal_types import *
from ..exceptions import EiscpReceiverError
from ..constants import (
    DEFAULT_PORT,
    DEFAULT_SEND_DELAY,
    DEFAULT_RECONNECT,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_DISCOVERY_TIMEOUT,
  )

class EiscpReceiverClientConfig:
    """eISCP receiver client session configuration."""
    host: Optional[str]
    port: int
    model: Optional[str]
    reconnect: bool
    reconnect_delay_secs: float
    send_delay_secs: float
    discovery_timeout_secs: float

    def __init__(
            self,
            host: Optional[str]=None,
            port: Optional[int]=None,
            *,
            model: Optional[str]=None,
            reconnect: Optional[bool]=None,
            reconnect_delay_secs: Optional[float]=None,
            send_delay_secs: Optional[float]=None,
            discovery_timeout_secs: Optional[float]=None,
            base_config: Optional[EiscpReceiverClientConfig]=None,
            use_environment: bool=True,
          ) -> None:
        """Creates a configuration for an eISCP receiver client.

           Args:
             host: The hostname or IPV4 address of the receiver. If None,
                   the host will be taken from the EISCP_RECEIVER_HOST
                   environment variable. If still unset, the receiver is
                   located with discovery at connect time.
             port: The TCP/IP port. If None, EISCP_RECEIVER_PORT or the
                   standard eISCP port (60128) is used.
             model:
                   The receiver model name. If None, EISCP_RECEIVER_MODEL is
                   used; if that is unset, the model is learned with a
                   discovery query sent directly to the host.
             reconnect:
                   If True, the session reconnects automatically after the
                   connection is lost. Default True.
             reconnect_delay_secs:
                   The delay before an automatic reconnect attempt. Default 5 seconds.
             send_delay_secs:
                   The minimum spacing between consecutive commands. Default 0.5 seconds.
             discovery_timeout_secs:
                   How long connect() waits for discovery responses. Default 10 seconds.
             base_config:
                   An optional base configuration to use. Environment
                   variables are only consulted if base_config is None.
             use_environment:
                   If False, environment variables are ignored.
        """
        if base_config is None:
            self.init_from_defaults(use_environment=use_environment)
        else:
            self.init_from_base_config(base_config)

        self.update(
            host=host,
            port=port,
            model=model,
            reconnect=reconnect,
            reconnect_delay_secs=reconnect_delay_secs,
            send_delay_secs=send_delay_secs,
            discovery_timeout_secs=discovery_timeout_secs,
          )

    def init_from_defaults(self, use_environment: bool=True) -> None:
        """Initializes the configuration from defaults."""
        self.host = None
        self.port = DEFAULT_PORT
        self.model = None
        self.reconnect = DEFAULT_RECONNECT
        self.reconnect_delay_secs = DEFAULT_RECONNECT_DELAY
        self.send_delay_secs = DEFAULT_SEND_DELAY
        self.discovery_timeout_secs = DEFAULT_DISCOVERY_TIMEOUT

        if use_environment:
            host = os.environ.get('EISCP_RECEIVER_HOST')
            if host is not None and host != '':
                self.host = host
            port_str = os.environ.get('EISCP_RECEIVER_PORT')
            if port_str is not None and port_str != '':
                try:
                    self.port = int(port_str)
                except ValueError as e:
                    raise EiscpReceiverError(f"Invalid EISCP_RECEIVER_PORT value: {port_str!r}") from e
            model = os.environ.get('EISCP_RECEIVER_MODEL')
            if model is not None and model != '':
                self.model = model

    def init_from_base_config(self, base_config: EiscpReceiverClientConfig) -> None:
        """Initializes the configuration from a base configuration."""
        self.host = base_config.host
        self.port = base_config.port
        self.model = base_config.model
        self.reconnect = base_config.reconnect
        self.reconnect_delay_secs = base_config.reconnect_delay_secs
        self.send_delay_secs = base_config.send_delay_secs
        self.discovery_timeout_secs = base_config.discovery_timeout_secs

    def update(
            self,
            host: Optional[str]=None,
            port: Optional[int]=None,
            *,
            model: Optional[str]=None,
            reconnect: Optional[bool]=None,
            reconnect_delay_secs: Optional[float]=None,
            send_delay_secs: Optional[float]=None,
            discovery_timeout_secs: Optional[float]=None,
          ) -> None:
        """Merges supplied values into the configuration. Values that are None
           (or empty/nonpositive where that is not meaningful) leave the current
           setting unchanged."""
        if host is not None and host != '':
            self.host = host

        if port is not None and port > 0:
            self.port = port

        if model is not None and model != '':
            self.model = model

        if reconnect is not None:
            self.reconnect = reconnect

        if reconnect_delay_secs is not None and reconnect_delay_secs > 0:
            self.reconnect_delay_secs = reconnect_delay_secs

        if send_delay_secs is not None and send_delay_secs >= 0:
            self.send_delay_secs = send_delay_secs

        if discovery_timeout_secs is not None and discovery_timeout_secs > 0:
            self.discovery_timeout_secs = discovery_timeout_secs

    def to_jsonable(self) -> JsonableDict:
        """Returns a JSON-serializable representation of the configuration."""
        result: JsonableDict = dict(
            port=self.port,
            reconnect=self.reconnect,
            reconnect_delay_secs=self.reconnect_delay_secs,
            send_delay_secs=self.send_delay_secs,
            discovery_timeout_secs=self.discovery_timeout_secs,
          )
        if self.host is not None:
            result['host'] = self.host
        if self.model is not None:
            result['model'] = self.model
        return result

    def to_json(self) -> str:
        """Returns a JSON representation of the configuration."""
        return json.dumps(self.to_jsonable())

    def update_from_jsonable(self, jsonable: JsonableDict) -> None:
        """Updates the configuration from a JSON-serializable representation."""
        port = jsonable.get('port')
        reconnect = jsonable.get('reconnect')
        reconnect_delay_secs = jsonable.get('reconnect_delay_secs')
        send_delay_secs = jsonable.get('send_delay_secs')
        discovery_timeout_secs = jsonable.get('discovery_timeout_secs')
        try:
            self.update(
                host=cast(Optional[str], jsonable.get('host')),
                port=None if port is None or port == '' else int(cast(Union[int, str], port)),
                model=cast(Optional[str], jsonable.get('model')),
                reconnect=None if reconnect is None or reconnect == '' else bool(reconnect),
                reconnect_delay_secs=None if reconnect_delay_secs is None or reconnect_delay_secs == ''
                    else float(cast(Union[float, str], reconnect_delay_secs)),
                send_delay_secs=None if send_delay_secs is None or send_delay_secs == ''
                    else float(cast(Union[float, str], send_delay_secs)),
                discovery_timeout_secs=None if discovery_timeout_secs is None or discovery_timeout_secs == ''
                    else float(cast(Union[float, str], discovery_timeout_secs)),
              )
        except ValueError as e:
            raise EiscpReceiverError(f"Invalid client configuration: {jsonable!r}") from e

    @classmethod
    def from_jsonable(cls, jsonable: JsonableDict, use_environment: bool=True) -> EiscpReceiverClientConfig:
        """Creates a configuration from a JSON-serializable representation."""
        result = cls(use_environment=use_environment)
        result.update_from_jsonable(jsonable)
        return result

    @classmethod
    def from_json(cls, json_str: str, use_environment: bool=True) -> EiscpReceiverClientConfig:
        """Creates a configuration from a JSON representation."""
        jsonable = json.loads(json_str)
        return cls.from_jsonable(jsonable, use_environment=use_environment)

    def __str__(self) -> str:
        return (
            f"EiscpReceiverClientConfig("
            f"host={self.host!r}, "
            f"port={self.port}, "
            f"model={self.model!r}, "
            f"reconnect={self.reconnect})"
          )

    def __repr__(self) -> str:
        return str(self)
