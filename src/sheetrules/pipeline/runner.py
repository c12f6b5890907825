"""Row pipeline: parse the mapping once, then build and filter each row."""

import logging
from typing import Optional, Sequence, Union

from ..rules.evaluator import FormulaSandbox, RuleEvaluator
from ..rules.models import EvaluationContext, FilterRule, RuleSyntaxError
from ..rules.parser import RuleParser
from ..rules.syntax import display_value
from ..sheets.client import index_to_col_letter
from .models import MappingRule, RuleSet, SourceTable, TransformResult

logger = logging.getLogger(__name__)

# Output row 1 holds the headers
FIRST_DATA_ROW = 2


class RowPipeline:
    """Apply a parsed rule set to every row of a source table."""

    def __init__(self, sandbox: FormulaSandbox):
        self.evaluator = RuleEvaluator(sandbox)

    @staticmethod
    def load_rules(
        rules: Sequence[Union[MappingRule, tuple[str, str]]],
        source_headers: list[str],
    ) -> RuleSet:
        """
        Parse the mapping table.

        Comment and empty-header rows are skipped. Parsing stops at the first
        invalid rule.

        Args:
            rules: Mapping rows in table order
            source_headers: Header row of the source table

        Returns:
            RuleSet with output instructions and filters

        Raises:
            RuleSyntaxError: If any rule is invalid
        """
        parser = RuleParser(source_headers)
        rule_set = RuleSet()

        for rule in rules:
            if not isinstance(rule, MappingRule):
                rule = MappingRule(header=rule[0], instruction=rule[1])
            if rule.is_skipped:
                continue

            try:
                instruction = parser.parse_instruction(rule.header, rule.instruction)
            except RuleSyntaxError as e:
                logger.error(f"Invalid mapping rule: {e}")
                raise

            if isinstance(instruction, FilterRule):
                rule_set.filters.append(instruction)
            else:
                rule_set.outputs.append(instruction)

        logger.info(
            f"Parsed {len(rule_set.outputs)} output columns and "
            f"{len(rule_set.filters)} filters"
        )
        return rule_set

    def build_context(
        self, source: SourceTable, row: list[str], rule_set: RuleSet, output_row: int
    ) -> EvaluationContext:
        """Create the per-row context; ``output_row`` is the 1-based sheet row."""
        cell_refs = {
            header: f"{index_to_col_letter(index)}{output_row}"
            for index, header in enumerate(rule_set.output_headers)
        }
        return EvaluationContext(
            source_row=source.row_dict(row),
            output_cell_refs=cell_refs,
        )

    def process_row(
        self, ctx: EvaluationContext, rule_set: RuleSet
    ) -> Optional[list[str]]:
        """
        Build one output row.

        Returns:
            The output values, or None when a filter rejects the row
        """
        values = []
        for instruction in rule_set.outputs:
            literal, evaluated = self.evaluator.resolve_output(instruction, ctx)
            ctx.output_so_far[instruction.header] = evaluated
            values.append(display_value(literal))

        for rule in rule_set.filters:
            if not self.evaluator.evaluate_filter(rule, ctx):
                logger.debug(f"Row rejected by filter '{rule.header}'")
                return None
        return values

    def run(self, source: SourceTable, rule_set: RuleSet) -> TransformResult:
        """Process every source row in order."""
        result = TransformResult(headers=rule_set.output_headers)

        for row in source.rows:
            result.rows_read += 1
            ctx = self.build_context(
                source, row, rule_set, FIRST_DATA_ROW + len(result.rows)
            )
            values = self.process_row(ctx, rule_set)
            if values is None:
                result.rows_filtered += 1
            else:
                result.rows.append(values)

        logger.info(
            f"Processed {result.rows_read} rows: {len(result.rows)} kept, "
            f"{result.rows_filtered} filtered"
        )
        return result

    def transform(
        self,
        source: SourceTable,
        rules: Sequence[Union[MappingRule, tuple[str, str]]],
    ) -> TransformResult:
        """Parse ``rules`` against ``source`` and run them."""
        rule_set = self.load_rules(rules, source.headers)
        return self.run(source, rule_set)
