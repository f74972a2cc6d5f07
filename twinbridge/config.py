"""Configuration loader for twinbridge."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from . import constants

DEFAULT_PASSTHROUGH_DEVICE_TOPICS: list[str] = []
DEFAULT_PASSTHROUGH_COMMAND_NAMES: list[str] = []


@dataclass(slots=True)
class LocalBrokerConfig:
    """Broker carrying the Ditto messages of the device."""

    broker_host: str = constants.DEFAULT_LOCAL_BROKER_HOST
    broker_port: int = constants.DEFAULT_LOCAL_BROKER_PORT
    username: Optional[str] = None
    password: Optional[str] = None
    client_id: str = f"{constants.APP_NAME}-local"
    tls: bool = False
    ca_certs: Optional[str] = None


@dataclass(slots=True)
class CloudConfig:
    broker_host: str = constants.DEFAULT_CLOUD_BROKER_HOST
    broker_port: int = constants.DEFAULT_CLOUD_BROKER_PORT
    username: Optional[str] = None
    password: Optional[str] = None
    device_id: str = ""
    hub_name: str = ""
    command_topic: str = constants.DEFAULT_COMMAND_TOPIC_TEMPLATE
    tls: bool = True
    ca_certs: Optional[str] = None

    @property
    def client_id(self) -> str:
        return self.device_id or f"{constants.APP_NAME}-cloud"

    @property
    def resolved_command_topic(self) -> str:
        return self.command_topic.format(device_id=self.device_id)


@dataclass(slots=True)
class MapperConfig:
    config_path: Path = Path(constants.DEFAULT_MAPPER_CONFIG_FILENAME)
    passthrough_device_topics: List[str] = field(
        default_factory=lambda: list(DEFAULT_PASSTHROUGH_DEVICE_TOPICS)
    )
    passthrough_command_names: List[str] = field(
        default_factory=lambda: list(DEFAULT_PASSTHROUGH_COMMAND_NAMES)
    )


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = constants.DEFAULT_LOG_PATH
    log_network: bool = False


@dataclass(slots=True)
class HealthConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 0


@dataclass(slots=True)
class BridgeConfig:
    local: LocalBrokerConfig
    cloud: CloudConfig
    mapper: MapperConfig
    logging: LoggingConfig
    health: HealthConfig
    raw: ConfigParser
    path: Path


def _parse_list(value: str, *, default: Iterable[str]) -> List[str]:
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


def _split_host(parser: ConfigParser, section: str, default_port: int) -> Tuple[str, int]:
    """Accept ``host:port`` in ``broker_host`` and normalise the parser."""

    host = parser.get(section, "broker_host")
    port = parser.getint(section, "broker_port", fallback=default_port)

    if ":" in host:
        host_part, port_part = host.rsplit(":", 1)
        try:
            parsed_port = int(port_part)
        except ValueError:
            pass
        else:
            host = host_part
            port = parsed_port
            parser.set(section, "broker_host", host_part)
            parser.set(section, "broker_port", str(parsed_port))
    return host, port


def load_config(path: Optional[Path] = None) -> BridgeConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "local": {
                "broker_host": constants.DEFAULT_LOCAL_BROKER_HOST,
                "broker_port": str(constants.DEFAULT_LOCAL_BROKER_PORT),
                "client_id": f"{constants.APP_NAME}-local",
                "tls": "false",
            },
            "cloud": {
                "broker_host": constants.DEFAULT_CLOUD_BROKER_HOST,
                "broker_port": str(constants.DEFAULT_CLOUD_BROKER_PORT),
                "device_id": "",
                "hub_name": "",
                "tls": "true",
            },
            "mapper": {
                "config_path": str(
                    config_path.parent / constants.DEFAULT_MAPPER_CONFIG_FILENAME
                ),
                "passthrough_device_topics": ",".join(DEFAULT_PASSTHROUGH_DEVICE_TOPICS),
                "passthrough_command_names": ",".join(DEFAULT_PASSTHROUGH_COMMAND_NAMES),
            },
            "logging": {
                "level": "INFO",
                "path": str(constants.DEFAULT_LOG_PATH),
                "log_network": "false",
            },
            "health": {
                "enabled": "false",
                "host": "127.0.0.1",
                "port": "0",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    local_host, local_port = _split_host(
        parser, "local", constants.DEFAULT_LOCAL_BROKER_PORT
    )
    local = LocalBrokerConfig(
        broker_host=local_host,
        broker_port=local_port,
        username=parser.get("local", "username", fallback=None),
        password=parser.get("local", "password", fallback=None),
        client_id=parser.get("local", "client_id"),
        tls=parser.getboolean("local", "tls", fallback=False),
        ca_certs=parser.get("local", "ca_certs", fallback=None),
    )

    cloud_host, cloud_port = _split_host(
        parser, "cloud", constants.DEFAULT_CLOUD_BROKER_PORT
    )
    cloud = CloudConfig(
        broker_host=cloud_host,
        broker_port=cloud_port,
        username=parser.get("cloud", "username", fallback=None),
        password=parser.get("cloud", "password", fallback=None),
        device_id=parser.get("cloud", "device_id"),
        hub_name=parser.get("cloud", "hub_name"),
        command_topic=parser.get(
            "cloud", "command_topic", fallback=constants.DEFAULT_COMMAND_TOPIC_TEMPLATE
        ),
        tls=parser.getboolean("cloud", "tls", fallback=True),
        ca_certs=parser.get("cloud", "ca_certs", fallback=None),
    )

    mapper = MapperConfig(
        config_path=Path(parser.get("mapper", "config_path")).expanduser(),
        passthrough_device_topics=_parse_list(
            parser.get("mapper", "passthrough_device_topics", fallback=""),
            default=DEFAULT_PASSTHROUGH_DEVICE_TOPICS,
        ),
        passthrough_command_names=_parse_list(
            parser.get("mapper", "passthrough_command_names", fallback=""),
            default=DEFAULT_PASSTHROUGH_COMMAND_NAMES,
        ),
    )

    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(
            parser.get("logging", "path", fallback=str(constants.DEFAULT_LOG_PATH))
        ).expanduser(),
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    health = HealthConfig(
        enabled=parser.getboolean("health", "enabled", fallback=False),
        host=parser.get("health", "host", fallback="127.0.0.1"),
        port=max(0, parser.getint("health", "port", fallback=0)),
    )

    return BridgeConfig(
        local=local,
        cloud=cloud,
        mapper=mapper,
        logging=logging_config,
        health=health,
        raw=parser,
        path=config_path,
    )
