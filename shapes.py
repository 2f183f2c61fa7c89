"""
Bar shape templates: the built-in shapes every estimation can use and the
user-defined shapes built by the shape builder.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Literal

from constants import BEND_FACTORS
from errors import ShapeDefinitionError, UnknownShapeError
from utils import to_number

logger = logging.getLogger(__name__)

ShapeKind = Literal['STRAIGHT', 'L_BEND', 'U_BEND', 'STIRRUP', 'CUSTOM', 'CUSTOM_LEGACY', 'SEGMENT_BASED']
BUILT_IN_KINDS = ('STRAIGHT', 'L_BEND', 'U_BEND', 'STIRRUP', 'CUSTOM')


@dataclass(frozen=True)
class Segment:
    label: str
    multiplier: float = 1


@dataclass(frozen=True)
class ShapeDefinition:
    """
    An immutable shape template.

    Built-in shapes carry `fields` and a fixed count of 90 deg bends.
    SEGMENT_BASED shapes carry ordered segments and a bend count per angle.
    CUSTOM_LEGACY shapes carry a free-text formula and a list of (angle, count) bends.
    """
    id: str
    kind: ShapeKind
    name: str = ''
    description: str = ''
    fields: tuple[str, ...] = ()
    bend_count: int = 0
    segments: tuple[Segment, ...] = ()
    deductions: dict[int, int] = field(default_factory=dict)
    formula: str = ''
    bends: tuple[tuple[float, float], ...] = ()

    def __post_init__(self):
        labels = [s.label for s in self.segments]
        if len(labels) != len(set(labels)):
            raise ShapeDefinitionError(f'Shape {self.id}: segment labels must be unique, got {labels}.')
        for segment in self.segments:
            if not segment.label:
                raise ShapeDefinitionError(f'Shape {self.id}: segment label cannot be empty.')
            if segment.multiplier < 1:
                raise ShapeDefinitionError(
                    f'Shape {self.id}: multiplier of segment {segment.label} must be at least 1.')
        for angle, count in self.deductions.items():
            if angle not in BEND_FACTORS:
                raise ShapeDefinitionError(f'Shape {self.id}: bend angle {angle} not supported.')
            if count < 0:
                raise ShapeDefinitionError(f'Shape {self.id}: bend count for {angle} deg cannot be negative.')

    @property
    def labels(self) -> tuple[str, ...]:
        """The dimension names a form should ask for."""
        if self.kind == 'SEGMENT_BASED':
            return tuple(s.label for s in self.segments)
        return self.fields

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'ShapeDefinition':
        """
        Builds a user-defined shape from its stored form.

        Args:
            data: A mapping with an `id` (or `_id`), `name`, and either
                `segments`/`deductions` (segment-based) or `formula`/`bends` (legacy).

        Raises:
            ShapeDefinitionError: If the shape breaks any invariant.
        """
        shape_id = data.get('id') or data.get('_id')
        if not shape_id:
            raise ShapeDefinitionError('Shape definition needs an id.')
        shape_id = str(shape_id)

        if data.get('type') == 'SEGMENT_BASED' or 'segments' in data:
            segments = tuple(
                Segment(label=str(seg.get('label', '')), multiplier=to_number(seg.get('multiplier'), 1) or 1)
                for seg in data.get('segments') or []
            )
            deductions = {}
            if data.get('deductions') is not None:
                for angle, count in data['deductions'].items():
                    angle = int(to_number(angle))
                    count = to_number(count)
                    if count:
                        deductions[angle] = count
            else:
                # Older segment shapes kept their bends as a list; unlisted angles deduct nothing
                for bend in data.get('bends') or []:
                    angle = to_number(bend.get('angle'))
                    count = to_number(bend.get('count'))
                    if angle in BEND_FACTORS and count:
                        angle = int(angle)
                        deductions[angle] = deductions.get(angle, 0) + count
            return cls(id=shape_id, kind='SEGMENT_BASED', name=data.get('name', ''),
                       description=data.get('description', ''), segments=segments, deductions=deductions)

        bends = tuple((to_number(b.get('angle')), to_number(b.get('count'))) for b in data.get('bends') or [])
        return cls(id=shape_id, kind='CUSTOM_LEGACY', name=data.get('name', ''),
                   description=data.get('description', ''), formula=data.get('formula') or '', bends=bends)

    def to_dict(self) -> dict[str, Any]:
        data = {'id': self.id, 'type': self.kind, 'name': self.name, 'description': self.description}
        if self.kind == 'SEGMENT_BASED':
            data['segments'] = [{'label': s.label, 'multiplier': s.multiplier} for s in self.segments]
            data['deductions'] = {str(angle): self.deductions.get(angle, 0) for angle in BEND_FACTORS}
        elif self.kind == 'CUSTOM_LEGACY':
            data['formula'] = self.formula
            data['bends'] = [{'angle': a, 'count': c} for a, c in self.bends]
        else:
            data['fields'] = list(self.fields)
            data['bends'] = self.bend_count
        return data


BAR_SHAPES = {
    'STRAIGHT': ShapeDefinition('STRAIGHT', 'STRAIGHT', 'Straight Bar', fields=('L',), bend_count=0),
    'L_BEND': ShapeDefinition('L_BEND', 'L_BEND', 'L-Bend', fields=('A', 'B'), bend_count=1),
    'U_BEND': ShapeDefinition('U_BEND', 'U_BEND', 'U-Bend', fields=('A', 'B', 'C'), bend_count=2),
    # Closed stirrup with hooks; the cutting length uses the hook allowance formula instead.
    'STIRRUP': ShapeDefinition('STIRRUP', 'STIRRUP', 'Rect. Stirrup', fields=('A', 'B'), bend_count=3),
    'CUSTOM': ShapeDefinition('CUSTOM', 'CUSTOM', 'Custom Shape', bend_count=0),
}
DEFAULT_SHAPE = BAR_SHAPES['STRAIGHT']


class ShapeRegistry:
    """
    Resolves shape references to definitions.

    User shapes can be added or replaced at any time. When a `source` callable
    is supplied it is asked for the current user shapes on every lookup, so a
    shape saved by the shape builder is visible to the very next calculation.
    """
    def __init__(self, custom_shapes: Iterable[ShapeDefinition | dict] = (),
                 source: Callable[[], Iterable[ShapeDefinition | dict]] | None = None,
                 strict: bool = False):
        self._custom: dict[str, ShapeDefinition] = {}
        self._source = source
        self.strict = strict
        self.replace_all(custom_shapes)

    @staticmethod
    def _coerce(shape: ShapeDefinition | dict) -> ShapeDefinition:
        if isinstance(shape, ShapeDefinition):
            return shape
        if not isinstance(shape, dict):
            raise ShapeDefinitionError(f'Shape definition must be a mapping, got {type(shape).__name__}.')
        return ShapeDefinition.from_dict(shape)

    def register(self, shape: ShapeDefinition | dict) -> ShapeDefinition:
        shape = self._coerce(shape)
        if shape.id in BAR_SHAPES:
            raise ShapeDefinitionError(f'Shape id {shape.id} is reserved for a built-in shape.')
        self._custom[shape.id] = shape
        return shape

    def unregister(self, shape_id: str) -> None:
        self._custom.pop(shape_id, None)

    def replace_all(self, shapes: Iterable[ShapeDefinition | dict]) -> None:
        self._custom = {}
        for shape in shapes:
            self.register(shape)

    def custom_shapes(self) -> list[ShapeDefinition]:
        """
        The current user shapes. Stored shapes from `source` that break an
        invariant are logged and skipped, so they never hide valid ones.
        """
        if self._source is None:
            return list(self._custom.values())
        shapes = []
        for stored in self._source():
            try:
                shapes.append(self._coerce(stored))
            except ShapeDefinitionError as e:
                logger.error('Skipping invalid stored shape: %s', e)
        return shapes

    def resolve(self, shape_ref: str | None) -> ShapeDefinition:
        """
        Returns the definition for `shape_ref`.

        Unresolvable references fall back to the straight bar, or raise
        UnknownShapeError when the registry is strict.
        """
        if shape_ref in BAR_SHAPES:
            return BAR_SHAPES[shape_ref]
        if shape_ref is not None:
            for shape in self.custom_shapes():
                if shape.id == str(shape_ref):
                    return shape
        if self.strict:
            raise UnknownShapeError(f'Shape {shape_ref!r} not found.')
        logger.warning('Shape %r not found, falling back to %s.', shape_ref, DEFAULT_SHAPE.id)
        return DEFAULT_SHAPE

    def __contains__(self, shape_ref: str) -> bool:
        return shape_ref in BAR_SHAPES or any(s.id == shape_ref for s in self.custom_shapes())
