"""
本文件用于将生成的报表以 JSON 文件形式持久化到磁盘，并提供列表与读取能力。
主要类:
- `ReportStore`: 一个报表一个文件（`<id>.json`）的文件存储
"""

import re
from pathlib import Path
from typing import Dict, List

from pydantic import ValidationError

from app.core.exceptions import ReportNotFoundError
from app.core.logger import setup_logger
from app.schemas.report import ReportDocument, ReportSummary

logger = setup_logger("ReportStore")

_REPORT_ID_RE = re.compile(r"^[A-Za-z0-9_\-]+$")


class ReportStore:
    """
    输入:
    - `reports_dir`: 报表目录（不存在时在首次保存时创建）

    输出:
    - 报表文件路径、报表摘要列表、完整报表文档

    作用:
    - 按 ID 保存/读取报表；列表需逐个解析文件元数据，无独立索引
    """

    def __init__(self, reports_dir: Path) -> None:
        self.reports_dir = Path(reports_dir)

    def _path_for(self, report_id: str) -> Path:
        if not _REPORT_ID_RE.match(report_id or ""):
            raise ReportNotFoundError(f"报表不存在: {report_id}")
        return self.reports_dir / f"{report_id}.json"

    def save(self, report: ReportDocument) -> Dict[str, str]:
        path = self._path_for(report.metadata.id)
        self.reports_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(report.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
        logger.info(f"💾 报表已保存: {path.name}")
        return {"filepath": str(path), "filename": path.name}

    def list(self) -> List[ReportSummary]:
        """
        输入:
        - 无

        输出:
        - 报表摘要列表（按生成时间倒序）；无法解析的文件记录日志后跳过

        作用:
        - 为报表列表/统计接口提供数据
        """

        if not self.reports_dir.exists():
            return []

        summaries: List[ReportSummary] = []
        for path in self.reports_dir.glob("*.json"):
            try:
                doc = ReportDocument.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, ValidationError, ValueError) as e:
                logger.error(f"❌ 读取报表文件失败 {path.name}: {e}")
                continue
            summaries.append(ReportSummary(filename=path.name, metadata=doc.metadata, size=path.stat().st_size))

        summaries.sort(key=lambda s: s.metadata.generated_at, reverse=True)
        return summaries

    def load(self, report_id: str) -> ReportDocument:
        path = self._path_for(report_id)
        if not path.exists():
            raise ReportNotFoundError(f"报表不存在: {report_id}")
        return ReportDocument.model_validate_json(path.read_text(encoding="utf-8"))

