import math
from typing import Callable, List, Optional, Sequence, Tuple

from evaluator import as_integer, evaluate
from utils.ast_utils import ASTNode, free_variables, node_kind
from utils.errors import CodegenError, EvaluationError


# Functions with a direct torch counterpart.
TORCH_FUNCTIONS = {
    "sin": "torch.sin",
    "cos": "torch.cos",
    "tan": "torch.tan",
    "sinh": "torch.sinh",
    "cosh": "torch.cosh",
    "tanh": "torch.tanh",
    "arcsin": "torch.asin",
    "arccos": "torch.acos",
    "arctan": "torch.atan",
    "exp": "torch.exp",
    "ln": "torch.log",
    "log": "torch.log10",
    "lg": "torch.log2",
    "sqrt": "torch.sqrt",
    "abs": "torch.abs",
}

# Reciprocal functions, emitted as safe_div(1.0, f(u)).
RECIPROCAL_FUNCTIONS = {
    "sec": "torch.cos",
    "csc": "torch.sin",
    "coth": "torch.tanh",
}


def mangle(name: str) -> str:
    """Python identifier for a variable (``x`` -> ``v_x``) that cannot clash
    with ``torch`` or the runtime helpers."""
    return f"v_{name}"


def ast_to_torch_expr(node: ASTNode) -> str:
    """Convert an expression node to a PyTorch source code string.

    Variables become mangled parameters, division goes through
    ``runtime.safe_div`` so a zero denominator yields NaN, and summations
    with constant bounds go through ``runtime.summation``.

    Parameters
    ----------
    node : ASTNode
        Scalar expression tree.

    Returns
    -------
    str
        A torch Python expression string.

    Raises
    ------
    CodegenError
        For matrices, ``det``, equations, and summations whose bounds are
        not constant integers.

    Examples
    --------
    >>> from codegen import ast_to_torch_expr
    >>> ast_to_torch_expr(("add", ("num", 1.0), ("var", "x")))
    '(1.0 + v_x)'
    >>> ast_to_torch_expr(("call", "sin", ("var", "theta")))
    'torch.sin(torch.as_tensor(v_theta, dtype=torch.float64))'
    """
    op = node[0]

    if op == "num":
        val = node[1]
        if math.isnan(val):
            return "float('nan')"
        if math.isinf(val):
            return "float('inf')" if val > 0 else "float('-inf')"
        return repr(val)

    elif op == "var":
        return mangle(node[1])

    elif op == "const":
        return repr(math.pi) if node[1] == "pi" else repr(math.e)

    elif op == "add":
        left = ast_to_torch_expr(node[1])
        right = ast_to_torch_expr(node[2])
        return f"({left} + {right})"

    elif op == "sub":
        left = ast_to_torch_expr(node[1])
        right = ast_to_torch_expr(node[2])
        return f"({left} - {right})"

    elif op == "mul":
        left = ast_to_torch_expr(node[1])
        right = ast_to_torch_expr(node[2])
        return f"({left} * {right})"

    elif op == "div":
        left = ast_to_torch_expr(node[1])
        right = ast_to_torch_expr(node[2])
        return f"safe_div({left}, {right})"

    elif op == "pow":
        left = ast_to_torch_expr(node[1])
        right = ast_to_torch_expr(node[2])
        return f"torch.pow(torch.as_tensor({left}, dtype=torch.float64), {right})"

    elif op == "neg":
        val = ast_to_torch_expr(node[1])
        return f"(-{val})"

    elif op == "call":
        name, arg = node[1], node[2]
        inner = ast_to_torch_expr(arg)
        as_tensor = f"torch.as_tensor({inner}, dtype=torch.float64)"
        if name in TORCH_FUNCTIONS:
            return f"{TORCH_FUNCTIONS[name]}({as_tensor})"
        if name in RECIPROCAL_FUNCTIONS:
            return f"safe_div(1.0, {RECIPROCAL_FUNCTIONS[name]}({as_tensor}))"
        if name == "cot":
            return f"safe_div(torch.cos({as_tensor}), torch.sin({as_tensor}))"
        raise CodegenError(f"Function '{name}' has no tensor translation")

    elif op == "sum":
        _, index, lower, upper, body = node
        bounds = []
        for bound in (lower, upper):
            if free_variables(bound):
                raise CodegenError("Summation bounds must be constant to generate tensor code")
            try:
                value = as_integer(evaluate(bound))
            except EvaluationError as exc:
                raise CodegenError(f"Cannot evaluate summation bound: {exc}") from exc
            if value is None:
                raise CodegenError("Summation bounds must be integers")
            bounds.append(value)
        body_code = ast_to_torch_expr(body)
        return f"summation(lambda {mangle(index)}: {body_code}, {bounds[0]}, {bounds[1]})"

    raise CodegenError(f"{node_kind(node)} has no tensor translation")


def generate_function(name: str, node: ASTNode, params: Sequence[str]) -> str:
    """Generate a Python/PyTorch function definition for an expression.

    Examples
    --------
    >>> from codegen import generate_function
    >>> print(generate_function("f", ("call", "exp", ("var", "x")), ["x"]))
    def f(v_x):
        return torch.exp(torch.as_tensor(v_x, dtype=torch.float64))
    """
    param_strs = [mangle(p) for p in params]
    lines = [f"def {name}({', '.join(param_strs)}):"]
    lines.append(f"    return {ast_to_torch_expr(node)}")
    return "\n".join(lines)


def from_ast_to_torch(
    node: ASTNode,
    params: Optional[Sequence[str]] = None,
    name: str = "f",
    print_code: bool = False
) -> Tuple[str, List[str]]:
    """Convert an expression tree into a complete, executable PyTorch source string.

    Parameters
    ----------
    node : ASTNode
        Scalar expression tree.
    params : Sequence[str] or None
        Parameter order of the generated function.  Defaults to the free
        variables in sorted order; listing extra names is allowed.
    name : str, default "f"
        Name of the generated function.
    print_code : bool, default False
        If ``True``, print the generated code.

    Returns
    -------
    tuple[str, list[str]]
        The source (ready for ``exec()``) and the parameter names.

    Raises
    ------
    CodegenError
        If a free variable of *node* is missing from *params*, or a node has
        no tensor translation.

    Examples
    --------
    >>> code, params = from_ast_to_torch(("mul", ("num", 2.0), ("var", "x")))
    >>> print(code)
    import torch
    <BLANKLINE>
    from runtime import safe_div, summation
    <BLANKLINE>
    def f(v_x):
        return (2.0 * v_x)
    >>> params
    ['x']
    """
    if node[0] == "eq":
        raise CodegenError("An equation has no tensor translation; generate code for one side")

    names = free_variables(node)
    if params is None:
        params = sorted(names)
    params = list(params)
    missing = names - set(params)
    if missing:
        raise CodegenError(f"Missing parameter(s) for free variable(s): {', '.join(sorted(missing))}")

    code_lines = [
        "import torch",
        "",
        "from runtime import safe_div, summation",
        "",
        generate_function(name, node, params),
    ]
    generated_code = "\n".join(code_lines)

    if print_code:
        print("\n=== arithma generated Pytorch code ===")
        print(generated_code)
        print("=== End Pytorch code ===\n")

    return generated_code, params


def compile_expression(node: ASTNode, params: Optional[Sequence[str]] = None) -> Tuple[Callable, List[str]]:
    """Generate, ``exec`` and return the PyTorch function for *node*."""
    code, params = from_ast_to_torch(node, params)
    namespace: dict = {}
    exec(code, namespace)
    return namespace["f"], params
