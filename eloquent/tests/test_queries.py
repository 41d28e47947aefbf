import re
import unittest

from eloquent.exceptions import QueryCompilationException
from eloquent.queries import Expression, AndExpression, NotExpression, TrueTerm, Term, Operator, \
    compile_query, normalize_where


class TestQueries(unittest.TestCase):
    def setUp(self):
        self.alice = {"name": "Alice", "age": 30, "tags": ["admin", "dev"], "profile": {"active": True}}
        self.bob = {"name": "Bob", "age": 17, "tags": [], "profile": {"active": False}}

    def test_literal_is_equality(self):
        match = compile_query({"name": "Alice"})
        self.assertTrue(match(self.alice))
        self.assertFalse(match(self.bob))

    def test_keys_are_and_combined(self):
        match = compile_query({"name": "Alice", "age": 17})
        self.assertFalse(match(self.alice))
        self.assertFalse(match(self.bob))

    def test_nested_path(self):
        match = compile_query({"profile.active": True})
        self.assertTrue(match(self.alice))
        self.assertFalse(match(self.bob))

    def test_ordering_operators(self):
        self.assertTrue(compile_query({"age": {"$gt": 18}})(self.alice))
        self.assertTrue(compile_query({"age": {"$gte": 30}})(self.alice))
        self.assertTrue(compile_query({"age": {"$lt": 18}})(self.bob))
        self.assertTrue(compile_query({"age": {"$lte": 17}})(self.bob))
        self.assertTrue(compile_query({"age": {"$gte": 18, "$lt": 40}})(self.alice))
        self.assertFalse(compile_query({"age": {"$gte": 18, "$lt": 20}})(self.alice))

    def test_ordering_on_missing_or_incomparable_is_false(self):
        for op in ("$gt", "$gte", "$lt", "$lte"):
            self.assertFalse(compile_query({"height": {op: 1}})(self.alice))
            self.assertFalse(compile_query({"name": {op: 1}})(self.alice))

    def test_eq_is_strict_for_booleans(self):
        self.assertFalse(compile_query({"flag": 1})({"flag": True}))
        self.assertTrue(compile_query({"flag": True})({"flag": True}))
        self.assertFalse(compile_query({"flag": None})({}))

    def test_in(self):
        match = compile_query({"name": {"$in": ["Alice", "Carol"]}})
        self.assertTrue(match(self.alice))
        self.assertFalse(match(self.bob))
        with self.assertRaises(QueryCompilationException):
            compile_query({"name": {"$in": "Alice"}})

    def test_contains_and_includes_are_aliases(self):
        for op in ("$contains", "$includes"):
            self.assertTrue(compile_query({"tags": {op: "dev"}})(self.alice))
            self.assertFalse(compile_query({"tags": {op: "dev"}})(self.bob))
            self.assertTrue(compile_query({"name": {op: "lic"}})(self.alice))
            self.assertFalse(compile_query({"age": {op: 3}})(self.alice))

    def test_not_inside_operator_object(self):
        match = compile_query({"age": {"$not": {"$gte": 18}}})
        self.assertFalse(match(self.alice))
        self.assertTrue(match(self.bob))
        self.assertTrue(compile_query({"name": {"$not": "Alice"}})(self.bob))

    def test_top_level_not_negates_whole_item(self):
        match = compile_query({"$not": {"name": "Alice", "age": 30}})
        self.assertFalse(match(self.alice))
        self.assertTrue(match(self.bob))

    def test_regex_literal(self):
        match = compile_query({"name": re.compile(r"^A")})
        self.assertTrue(match(self.alice))
        self.assertFalse(match(self.bob))

    def test_callable_spec_receives_index(self):
        match = compile_query(lambda item, index: index == 1)
        self.assertFalse(match(self.alice, 0))
        self.assertTrue(match(self.bob, 1))
        self.assertTrue(compile_query(lambda item: item["age"] > 20)(self.alice))

    def test_custom_validator(self):
        def between(path, bounds):
            low, high = bounds
            return lambda item: low <= item[path] <= high

        match = compile_query({"age": {"$between": (20, 40)}}, {"$between": between})
        self.assertTrue(match(self.alice))
        self.assertFalse(match(self.bob))
        # Validators may be registered without the leading $
        match = compile_query({"age": {"$between": (10, 20)}}, {"between": between})
        self.assertTrue(match(self.bob))

    def test_compile_errors_are_raised_eagerly(self):
        with self.assertRaises(QueryCompilationException):
            compile_query({"age": {"$near": 3}})
        with self.assertRaises(QueryCompilationException):
            compile_query({"age": {"$gt": 3, "plain": 1}})
        with self.assertRaises(QueryCompilationException):
            compile_query({"$or": [{"a": 1}]})
        with self.assertRaises(QueryCompilationException):
            compile_query({"$not": 3})
        with self.assertRaises(QueryCompilationException):
            compile_query(42)

    def test_validator_must_return_callable(self):
        with self.assertRaises(QueryCompilationException):
            compile_query({"age": {"$bad": 1}}, {"$bad": lambda path, value: True})

    def test_expression_shapes(self):
        self.assertIsInstance(Expression.compile({}), TrueTerm)
        self.assertIsInstance(Expression.compile({"a": 1}), Term)
        self.assertIsInstance(Expression.compile({"a": 1, "b": 2}), AndExpression)
        self.assertIsInstance(Expression.compile({"$not": {"a": 1}}), NotExpression)
        double = NotExpression(NotExpression(Expression.compile({"a": 1}))).optimize()
        self.assertIsInstance(double, Term)

    def test_get_operator(self):
        self.assertEqual(Operator.get_operator("$includes").symbol, "$contains")
        with self.assertRaises(QueryCompilationException):
            Operator.get_operator("$unknown")

    def test_normalize_where(self):
        self.assertEqual(normalize_where("age", 3), {"age": {"$eq": 3}})
        self.assertEqual(normalize_where("age", ">=", 3), {"age": {"$gte": 3}})
        self.assertEqual(normalize_where("age", "!=", 3), {"age": {"$not": 3}})
        self.assertEqual(normalize_where("tags", "includes", "x"), {"tags": {"$includes": "x"}})
        with self.assertRaises(QueryCompilationException):
            normalize_where("age", "~", 3)
        with self.assertRaises(QueryCompilationException):
            normalize_where("age")


if __name__ == '__main__':
    unittest.main()
