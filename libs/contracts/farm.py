# libs/contracts/farm.py
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field

class FarmAttributes(BaseModel):
    # 农场记录的已知字段；核心流程视其为不透明 payload，因此允许额外字段
    model_config = ConfigDict(extra="allow", str_strip_whitespace=True)
    farmid: Optional[str] = None            # 业务侧农场编号（与 job id 不同）
    farm_name: Optional[str] = None
    farm_area: Optional[float] = Field(None, ge=0)
    shape: Optional[str] = None
    size_fragmentation: Optional[str] = None
    level: Optional[str] = None
    boundary: Optional[str] = None
    style: Optional[str] = None
    cropping_pattern: Optional[str] = None
    obstacle_density: Optional[float] = Field(None, ge=0)
    soil_type: Optional[str] = None
    chemical_mix: Optional[str] = None
    temp: Optional[float] = None            # 温度（℃）
    organic_matter: Optional[str] = None
    spray_type: Optional[str] = None
    coverage: Optional[str] = None
    effectiveness: Optional[str] = None
    suggested_volume: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        # 只保留调用方实际给出的字段，worker 看到的 snapshot 不含空占位
        return {**self.model_dump(exclude_unset=True), **(self.model_extra or {})}


class FarmCreate(FarmAttributes):
    # 与前端提交的扁平农场表单一致；id 可选，用于调用方指定 job id
    id: Optional[str] = Field(None, min_length=1)

    def to_payload(self) -> Dict[str, Any]:
        return {**self.model_dump(exclude_unset=True, exclude={"id"}), **(self.model_extra or {})}


class ComputeResult(BaseModel):
    # 外部计算 worker 回调的已知字段（驼峰命名与回调报文一致），其余字段原样保留
    model_config = ConfigDict(extra="allow", populate_by_name=True)
    id: Optional[str] = None
    farm_id: Optional[str] = Field(None, alias="farmId")
    claim_token: Optional[str] = Field(None, alias="claimToken")
    sprayEfficiency: Optional[float] = None
    coverage: Optional[float] = None
    bestAlgorithm: Optional[str] = None
    recommendedFormula: Optional[str] = None
    imagePath: Optional[str] = None

    def job_id(self) -> Optional[str]:
        raw = self.id or self.farm_id
        return raw.strip() if raw and raw.strip() else None

    def fields(self) -> Dict[str, Any]:
        """Result fields only: routing keys dropped, unset known fields dropped."""
        data = self.model_dump(exclude_unset=True, exclude={"id", "farm_id", "claim_token"})
        return {**data, **(self.model_extra or {})}
