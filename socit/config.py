# socit/config.py
from dataclasses import dataclass, field
from pathlib import Path
import configparser


@dataclass(frozen=True)
class PanelConfig:
    name: str
    latitude: float
    longitude: float
    tilt: float
    azimuth: float
    power: float  # rated W


@dataclass(frozen=True)
class InverterConfig:
    device: str
    min_soc: float
    fallback_soc: float
    min_discharge_power: float
    max_discharge_power: float
    unit: int = 1
    charge_power: float | None = None
    dry_run: bool = False
    timezone: str | None = None
    timeout: float = 3.0
    panels: tuple[PanelConfig, ...] = ()


@dataclass
class SocConfig:
    interval_seconds: float = 60.0


@dataclass
class CoilConfig:
    enabled: bool = False
    interval_seconds: float = 10.0
    window: int = 11
    max_power: float = 5000.0
    hysteresis: float = 10.0


@dataclass
class EspConfig:
    enabled: bool = False
    api_key: str | None = None
    area: str | None = None
    base_url: str = "https://developer.sepush.co.za/business/2.0"
    timeout: float = 10.0
    interval_minutes: float = 60.0
    staleness_hours: float = 4.0
    startup_grace_seconds: float = 10.0
    test_mode: str | None = None


@dataclass
class Influxdb2Config:
    enabled: bool = False
    host: str | None = None
    org: str | None = None
    token: str | None = None
    bucket: str | None = None
    timeout: float = 5.0


@dataclass
class MonitoringConfig:
    jsonl_path: str | None = None


@dataclass
class LoggingConfig:
    console_level: str = "INFO"
    console_quiet: bool = False
    debug_modules: list[str] = field(default_factory=list)


@dataclass
class AppConfig:
    inverter: InverterConfig
    soc: SocConfig
    coil: CoilConfig
    esp: EspConfig
    influxdb2: Influxdb2Config
    monitoring: MonitoringConfig
    logging: LoggingConfig


class Config:
    def __init__(self, path: str):
        self.path = Path(path)
        self.parser = configparser.ConfigParser(inline_comment_prefixes=("#",))
        read = self.parser.read(self.path)
        if not read:
            raise FileNotFoundError(f"Config file not found: {self.path}")

    @classmethod
    def load(cls, path: str) -> AppConfig:
        cfg = cls(path)

        p = cfg.parser

        def _as_bool(value: str) -> bool:
            return value.strip().lower() == "true"

        def _maybe_float(raw: str | None) -> float | None:
            if raw is None:
                return None
            raw = raw.strip()
            if not raw:
                return None
            return float(raw)

        def _maybe_str(raw: str | None) -> str | None:
            if raw is None:
                return None
            raw = raw.strip()
            return raw or None

        # --- Inverter ---
        if "inverter" not in p:
            raise ValueError("[inverter] section missing from config")
        inv_sec = p["inverter"]
        for key in ("device", "min_soc", "fallback_soc", "min_discharge_power", "max_discharge_power"):
            if key not in inv_sec:
                raise ValueError(f"[inverter] is missing required key '{key}'")

        panels: list[PanelConfig] = []
        panel_names = inv_sec.get("panels", "")
        for name in [x.strip() for x in panel_names.split(",") if x.strip()]:
            sec = f"panels:{name}"
            if sec not in p:
                raise ValueError(f"Missing section [{sec}] for panels '{name}'")
            panel_sec = p[sec]
            panels.append(
                PanelConfig(
                    name=name,
                    latitude=float(panel_sec["latitude"]),
                    longitude=float(panel_sec["longitude"]),
                    tilt=float(panel_sec["tilt"]),
                    azimuth=float(panel_sec["azimuth"]),
                    power=float(panel_sec["power"]),
                )
            )

        inv_kwargs = {
            "device": inv_sec["device"].strip(),
            "min_soc": float(inv_sec["min_soc"]),
            "fallback_soc": float(inv_sec["fallback_soc"]),
            "min_discharge_power": float(inv_sec["min_discharge_power"]),
            "max_discharge_power": float(inv_sec["max_discharge_power"]),
            "panels": tuple(panels),
        }
        if "unit" in inv_sec:
            inv_kwargs["unit"] = int(inv_sec["unit"])
        if (charge_power := _maybe_float(inv_sec.get("charge_power"))) is not None:
            inv_kwargs["charge_power"] = charge_power
        if "dry_run" in inv_sec:
            inv_kwargs["dry_run"] = _as_bool(inv_sec["dry_run"])
        if (tz := _maybe_str(inv_sec.get("timezone"))) is not None:
            inv_kwargs["timezone"] = tz
        if "timeout" in inv_sec:
            inv_kwargs["timeout"] = float(inv_sec["timeout"])
        inverter = InverterConfig(**inv_kwargs)

        for name, value in (("min_soc", inverter.min_soc), ("fallback_soc", inverter.fallback_soc)):
            if not 0 <= value <= 100:
                raise ValueError(f"[inverter] {name} must be between 0 and 100 (got {value})")

        # --- SoC controller ---
        soc_kwargs = {}
        if "soc" in p and "interval_seconds" in p["soc"]:
            soc_kwargs["interval_seconds"] = float(p["soc"]["interval_seconds"])
        soc_cfg = SocConfig(**soc_kwargs)

        # --- Coil controller ---
        coil_kwargs = {}
        if "coil" in p:
            coil_sec = p["coil"]
            if "enabled" in coil_sec:
                coil_kwargs["enabled"] = _as_bool(coil_sec["enabled"])
            if "interval_seconds" in coil_sec:
                coil_kwargs["interval_seconds"] = float(coil_sec["interval_seconds"])
            if "window" in coil_sec:
                coil_kwargs["window"] = int(coil_sec["window"])
            if "max_power" in coil_sec:
                coil_kwargs["max_power"] = float(coil_sec["max_power"])
            if "hysteresis" in coil_sec:
                coil_kwargs["hysteresis"] = float(coil_sec["hysteresis"])
        coil_cfg = CoilConfig(**coil_kwargs)

        # --- EskomSePush ---
        esp_kwargs = {}
        if "esp" in p:
            esp_sec = p["esp"]
            if "enabled" in esp_sec:
                esp_kwargs["enabled"] = _as_bool(esp_sec["enabled"])
            if (api_key := _maybe_str(esp_sec.get("api_key"))) is not None:
                esp_kwargs["api_key"] = api_key
            if (area := _maybe_str(esp_sec.get("area"))) is not None:
                esp_kwargs["area"] = area
            if "base_url" in esp_sec:
                esp_kwargs["base_url"] = esp_sec["base_url"].strip()
            if "timeout" in esp_sec:
                esp_kwargs["timeout"] = float(esp_sec["timeout"])
            if "interval_minutes" in esp_sec:
                esp_kwargs["interval_minutes"] = float(esp_sec["interval_minutes"])
            if "staleness_hours" in esp_sec:
                esp_kwargs["staleness_hours"] = float(esp_sec["staleness_hours"])
            if "startup_grace_seconds" in esp_sec:
                esp_kwargs["startup_grace_seconds"] = float(esp_sec["startup_grace_seconds"])
            if (test_mode := _maybe_str(esp_sec.get("test_mode"))) is not None:
                esp_kwargs["test_mode"] = test_mode
        esp_cfg = EspConfig(**esp_kwargs)

        # --- InfluxDB 2 ---
        influx_kwargs = {}
        if "influxdb2" in p:
            influx_sec = p["influxdb2"]
            if "enabled" in influx_sec:
                influx_kwargs["enabled"] = _as_bool(influx_sec["enabled"])
            for key in ("host", "org", "token", "bucket"):
                if (value := _maybe_str(influx_sec.get(key))) is not None:
                    influx_kwargs[key] = value
            if "timeout" in influx_sec:
                influx_kwargs["timeout"] = float(influx_sec["timeout"])
        influx_cfg = Influxdb2Config(**influx_kwargs)

        monitoring_kwargs = {}
        if "monitoring" in p:
            if (jsonl_path := _maybe_str(p["monitoring"].get("jsonl_path"))) is not None:
                monitoring_kwargs["jsonl_path"] = jsonl_path
        monitoring_cfg = MonitoringConfig(**monitoring_kwargs)

        logging_kwargs = {}
        if "logging" in p:
            logging_sec = p["logging"]
            if "console_level" in logging_sec:
                logging_kwargs["console_level"] = logging_sec["console_level"]
            if "console_quiet" in logging_sec:
                logging_kwargs["console_quiet"] = _as_bool(logging_sec["console_quiet"])
            if "debug_modules" in logging_sec:
                raw = logging_sec["debug_modules"]
                logging_kwargs["debug_modules"] = [x.strip() for x in raw.split(",") if x.strip()]
        logging_cfg = LoggingConfig(**logging_kwargs)

        return AppConfig(
            inverter=inverter,
            soc=soc_cfg,
            coil=coil_cfg,
            esp=esp_cfg,
            influxdb2=influx_cfg,
            monitoring=monitoring_cfg,
            logging=logging_cfg,
        )
